# ensure indexes run at startup
async def create_indexes(db):
    await db.users.create_index("username", unique=True)
    await db.users.create_index("user_handle", unique=True)

    # credentials are keyed by credential id (_id), looked up per user
    await db.credentials.create_index([("user_id", 1)])

    # Mongo's TTL monitor sweeps expired challenges and sessions;
    # services also check expires_at on use
    await db.challenges.create_index("expires_at", expireAfterSeconds=0)
    await db.sessions.create_index("expires_at", expireAfterSeconds=0)
    await db.sessions.create_index([("user_id", 1)])

    await db.polls.create_index([("creator_id", 1), ("created_at", -1)])
    await db.polls.create_index([("created_at", -1)])
