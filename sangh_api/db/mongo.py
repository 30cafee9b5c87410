# sangh_api/db/mongo.py
from motor.motor_asyncio import AsyncIOMotorClient
from dotenv import load_dotenv
import os

load_dotenv()

MONGO_URL = os.getenv("MONGODB_URL")
if not MONGO_URL:
    raise RuntimeError("MONGODB_URL env var is not set")

MONGO_DB_NAME = os.getenv("MONGODB_DB_NAME", "sangh")

client = AsyncIOMotorClient(MONGO_URL)
db = client[MONGO_DB_NAME]

# Collections
users_collection = db["users"]                       # read only here: authors, roles, sanghRoles
hierarchical_sanghs_collection = db["hierarchical_sanghs"]
sangh_posts_collection = db["sangh_posts"]           # one doc per post, comments/replies embedded
notifications_collection = db["notifications"]
socket_sessions_collection = db["socket_sessions"]


# Call once at startup to ensure indexes exist.
async def init_db_indexes() -> None:
    # Sangh posts: per-Sangh listing and the global feed
    await sangh_posts_collection.create_index([("sangh_id", 1), ("is_hidden", 1), ("created_at", -1)])
    await sangh_posts_collection.create_index([("is_hidden", 1), ("created_at", -1)])
    await sangh_posts_collection.create_index([("posted_by_user_id", 1)])
    # Sub-document lookups (comment / reply / media by generated id)
    await sangh_posts_collection.create_index([("comments.id", 1)])
    await sangh_posts_collection.create_index([("comments.user_id", 1)])
    await sangh_posts_collection.create_index([("likes", 1)])

    # Notifications: inbox newest first, unread counts
    await notifications_collection.create_index([("receiver_id", 1), ("created_at", -1)])
    await notifications_collection.create_index([("receiver_id", 1), ("is_read", 1)])

    # Map user -> sockets quickly
    await socket_sessions_collection.create_index([("user_id", 1)])
    await socket_sessions_collection.create_index([("sid", 1)], unique=True)
