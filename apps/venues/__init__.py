"""Venues app package.

Holds the sports venues players book, their opening hours, banded
pricing, payment options, manual blocks, payout bank details and the
platform-wide defaults (commission and payout frequency).
"""
