"""Change relay — PG LISTEN/NOTIFY bridged onto the Redis change feed.

Learn: The relay is a separate process (`eduverse relay`) that:
1. LISTENs on the row-change NOTIFY channel via asyncpg
2. Republishes each notification on the Redis channel for its table
3. Leaves all filtering to the subscribers (RedisChangeFeed)

Running it out of the API process keeps a relay crash from taking the
API down, and lets several API instances share one feed.
"""
