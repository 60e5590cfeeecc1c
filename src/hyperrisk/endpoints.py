HYPERLIQUID_API_BASE = "https://api.hyperliquid.xyz"
INFO_PATH = "/info"
