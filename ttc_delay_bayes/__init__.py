"""Bayesian analysis of Toronto Transit Commission bus delays."""

__version__ = "0.1.0"
