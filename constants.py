import os

from dotenv import load_dotenv

load_dotenv()

HOST = os.getenv("HOST", "0.0.0.0")
PORT = int(os.getenv("PORT", 8080))
LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
LOG_FILE = os.getenv("LOG_FILE", None)
CORS_ORIGINS = os.getenv("CORS_ORIGINS", "*")

MONGO_URI = os.getenv("MONGO_URI", "mongodb://localhost:27017")
MONGO_DB = os.getenv("MONGO_DB", "chat")
MONGO_TIMEOUT_MS = int(os.getenv("MONGO_TIMEOUT_MS", 5000))

# Participant whose email matches this address is treated as the AI user
AI_USER_EMAIL = os.getenv("AI_USER_EMAIL", None)

HF_API_KEY = os.getenv("HF_API_KEY", None)
HF_API_URL = os.getenv("HF_API_URL", "https://router.huggingface.co/v1/chat/completions")
HF_MODEL = os.getenv("HF_MODEL", "meta-llama/Llama-3.1-8B-Instruct")
AI_TIMEOUT_SECONDS = float(os.getenv("AI_TIMEOUT_SECONDS", 60))
AI_MAX_TOKENS = int(os.getenv("AI_MAX_TOKENS", 256))

REDIS_HOST = os.getenv("REDIS_HOST", "localhost")
REDIS_PORT = os.getenv("REDIS_PORT", 6379)
REDIS_PASSWORD = os.getenv("REDIS_PASSWORD", None)

if REDIS_PASSWORD:
    REDIS_URL = os.getenv("REDIS_URL", f"redis://:{REDIS_PASSWORD}@{REDIS_HOST}:{REDIS_PORT}")
else:
    REDIS_URL = os.getenv("REDIS_URL", f"redis://{REDIS_HOST}:{REDIS_PORT}")

# Fan out Socket.IO emits through Redis so several instances can share rooms
USE_REDIS_MANAGER = os.getenv("USE_REDIS_MANAGER", "false").lower() == "true"

# MongoDB collection names (mongoose model names, pluralised)
USERS_COLLECTION = "users"
CHATS_COLLECTION = "chats"
MESSAGES_COLLECTION = "messages"
