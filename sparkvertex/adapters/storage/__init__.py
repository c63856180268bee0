"""Storage adapters.

Services depend on the abstract stores in ``base``; the Supabase
implementation talks to PostgREST through the service-role client.
"""
