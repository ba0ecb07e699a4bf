"""Sovereign Credit Intelligence - Services"""
