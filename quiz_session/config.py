from dotenv import load_dotenv
import os

load_dotenv()

DATABASE_URL = os.getenv("DATABASE_URL", "sqlite+aiosqlite:///./quiz_session.db")
SQL_ECHO = os.getenv("SQL_ECHO", "false").lower() in ("1", "true", "yes")

# quiz backend (catalog + plaintext submissions)
BACKEND_URL = os.getenv("BACKEND_URL", "http://127.0.0.1:80")

# chain node with an unlocked account; unset means no wallet
CHAIN_RPC_URL = os.getenv("CHAIN_RPC_URL")
CONTRACT_ADDRESS = os.getenv("CONTRACT_ADDRESS", "0xCd1a3b3FADffAcf76beA7B5C264515E91f996Cc1")
RECEIPT_POLL_SECONDS = float(os.getenv("RECEIPT_POLL_SECONDS", "1"))
RECEIPT_TIMEOUT_SECONDS = float(os.getenv("RECEIPT_TIMEOUT_SECONDS", "120"))

# "recorded" hashes answers in the order they were first given, "question" in quiz order
COMMIT_ORDER = os.getenv("COMMIT_ORDER", "recorded")
TICK_SECONDS = float(os.getenv("TICK_SECONDS", "1"))

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO")
