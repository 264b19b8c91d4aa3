"""Subway turnstile ridership vs. NYC COVID-19 case counts, 2019-2021."""

__version__ = "0.1.0"
