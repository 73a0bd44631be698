"""Business operations for the Dealerline CRM.

Each service takes an AsyncSession, composes repository calls, commits at
the points where a write must be durable before an outbound webhook, and
reports webhook outcomes as counters instead of raising.
"""
