"""Finances app package.

Commission resolution, the immutable payment ledger, the payment gateway
client, payout batches and reconciliation of venue payables against
money already paid out.
"""
