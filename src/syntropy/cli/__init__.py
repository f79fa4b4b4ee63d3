"""Syntropy command line interface."""
