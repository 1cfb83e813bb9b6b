REDIS_META_KEY = "meta:{slug}" # room id - legacy room hash
REDIS_SECURE_META_KEY = "meta:{slug}:secure" # room id - secure room hash
REDIS_MESSAGES_KEY = "messages:{slug}" # room id - list of JSON messages
REDIS_HISTORY_KEY = "history:{slug}" # room id - list of sender entries
REDIS_EVENT_STREAM_KEY = "{slug}" # room id - realtime event history stream
REDIS_SECURE_MESSAGE_STREAM_KEY = "stream:room:{slug}:msg" # room id - encrypted envelopes
REDIS_SECURE_SIGNAL_STREAM_KEY = "stream:room:{slug}:signal" # room id - secure replay log
REDIS_ROOM_CHANNEL = "room:channel:{slug}" # room id - pub/sub channel name
REDIS_PERMANENT_ROOMS_KEY = "rooms:permanent" # sorted set, score = createdAt (ms)
REDIS_USER_ROOMS_KEY = "user:{user_id}:rooms" # sorted set of room ids per user
REDIS_SESSION_KEY = "session:{session_id}" # session hash (userId, username, createdAt)

# **Example `meta:{id}` hash fields**
# - `connected` = JSON list of tokens
# - `participants` = JSON object identity key -> token
# - `revokedParticipants` = JSON list of identity keys
# - `createdAt` = epoch ms
# - `maxParticipants` = integer
# - `ttlMinutes` = integer (0 = permanent, indexed in rooms:permanent)
# - `creatorToken` = token of the first joiner
# - `password`, `panicPassword`, `securityQuestion`, `securityAnswer` (optional)

# **Example `meta:{id}:secure` hash fields**
# - `mode` = "secure-v2"
# - `securityQuestion`, `roomSaltHex`, `kdfIterations`, `gatekeeperVerifierHex`
# - `expiresAt` = epoch ms
