import os

DISCORD_TOKEN = os.environ.get("DISCORD_TOKEN")
GUILD_ID = int(os.environ.get("GUILD_ID", "0"))

OPENAI_API_KEY_OPENROUTER = os.environ.get("OPENAI_API_KEY_OPENROUTER")
OPENROUTER_BASE_URL = os.environ.get("OPENROUTER_BASE_URL", "https://openrouter.ai/api/v1")

# Translation provider: "google" or "openrouter"
TRANSLATE_PROVIDER = os.environ.get("TRANSLATE_PROVIDER", "google")
TRANSLATION_AI_MODEL = os.environ.get("TRANSLATION_AI_MODEL", "google/gemini-2.5-flash")
GOOGLE_TRANSLATE_URL = os.environ.get(
    "GOOGLE_TRANSLATE_URL", "https://translate.googleapis.com/translate_a/single"
)

# Paths
DATA_PATH = os.environ.get("DATA_PATH", "/var/lib/inline-translate")
TRANSLATE_DB_PATH = os.environ.get(
    "TRANSLATE_DB_PATH", os.path.join(DATA_PATH, "translate.db")
)
DATASTORE_NAMESPACE = os.environ.get("DATASTORE_NAMESPACE", "Translate")


def get_env_bool(var_name, default):
    val = os.environ.get(var_name)
    if val is None:
        return default
    return val.strip().lower() in ("1", "true", "yes", "on")


# Runtime defaults, overridden by whatever is saved in the datastore
RECEIVED_INPUT = os.environ.get("RECEIVED_INPUT", "auto")
RECEIVED_OUTPUT = os.environ.get("RECEIVED_OUTPUT", "en")
SENT_INPUT = os.environ.get("SENT_INPUT", "auto")
SENT_OUTPUT = os.environ.get("SENT_OUTPUT", "en")
AUTO_TRANSLATE = get_env_bool("AUTO_TRANSLATE", False)
SHOW_AUTO_TRANSLATE_TOOLTIP = get_env_bool("SHOW_AUTO_TRANSLATE_TOOLTIP", True)
AMOUNT_TO_AUTO_TRANSLATE = int(os.environ.get("AMOUNT_TO_AUTO_TRANSLATE", "3"))
TOOLTIP_SECONDS = float(os.environ.get("TOOLTIP_SECONDS", "2"))

# Emoji that acts as the per-message translate button
TRANSLATE_REACTION = os.environ.get("TRANSLATE_REACTION", "\N{GLOBE WITH MERIDIANS}")
