# ==== BUSINESS RULES PACKAGE ==== #

"""
Business rules for membership roles, permission defaults and monetary
amount coercion shared by the resolver and the budget ledger.
"""
