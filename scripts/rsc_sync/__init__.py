"""RSC reporting sync.

Connects to the Rubrik Security Cloud GraphQL API, pages through entity
connections, flattens each node into a flat record and optionally upserts
the records into PostgreSQL reporting tables.
"""
