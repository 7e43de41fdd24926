"""
claimant_messaging.services -- queue client, lock coordinator, processor,
scheduler and failure reporter.
"""
