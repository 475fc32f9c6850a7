"""Configuration, errors, logging and payload helpers"""
