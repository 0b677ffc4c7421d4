REDIS_SOCKETIO_CHANNEL = "chat:socketio" # pub/sub channel shared by all Socket.IO instances

# Every instance subscribes to REDIS_SOCKETIO_CHANNEL through socketio.AsyncRedisManager.
# An emit to a room on one instance is published here and re-emitted by each instance
# to its own local connections in that room.
