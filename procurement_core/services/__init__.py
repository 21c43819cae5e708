# ==== SERVICES PACKAGE ==== #

"""
Services package for the procurement core.

Contains the access-consistency resolver, the cached collection loader, the
budget ledger aggregator, invoice settlement and change signalling.
"""
