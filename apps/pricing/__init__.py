"""Pricing app package.

This app holds the charter price table and the resolver that picks the
applicable rule for a vehicle, driver language, duration and date.
Date-bound (seasonal/holiday) rules override standing rules.
"""
