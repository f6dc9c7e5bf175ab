import os
from dotenv import load_dotenv

load_dotenv()

# Logging
LOG_LEVEL = os.getenv("MODSIGN_LOG_LEVEL", "INFO").upper()

# Key material; passwords may come from the environment instead of argv
KEYSTORE_PWD = os.getenv("MODSIGN_KEYSTORE_PWD", "")
ALIAS_PWD = os.getenv("MODSIGN_ALIAS_PWD", "")
PKCS11_TOOL = os.getenv("MODSIGN_PKCS11_TOOL", "pkcs11-tool")

# Optional node-exporter textfile written after each CLI run
METRICS_FILE = os.getenv("MODSIGN_METRICS_FILE") or None
