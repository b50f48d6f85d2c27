"""WeatherShield: parametric crop insurance keyed to weather triggers."""

__version__ = "0.1.0"
