"""
VoteRelay — Vote Webhook Ingestion for Discord Bots
====================================================
Receives vote webhooks from bot-listing sites (Top.gg, discordbotlist.com),
authenticates them, records each real vote and hands role grants and
forwarding off to background workers through durable queues.

Package layout::

    voterelay/
    ├── config.py          # YAML → typed Python config
    ├── constants.py       # Platform names, webhook URL helper
    ├── errors.py          # Ingestion error taxonomy → HTTP status
    ├── database/
    │   ├── engine.py      # SQLAlchemy engine + async helper
    │   └── models.py      # applications, votes, forwardings, queued_messages
    ├── engine/
    │   ├── signature.py   # HMAC-SHA256 sign / constant-time verify
    │   ├── payloads.py    # Typed vote payload variants
    │   ├── validator.py   # v0/v1 detection + authentication
    │   └── snowflake.py   # Time-ordered vote IDs
    ├── services/
    │   ├── ingestion.py   # Webhook → vote → queued jobs
    │   ├── forwarding.py  # Forwarding envelopes + retry schedule
    │   ├── store.py       # Config / vote persistence
    │   ├── queues.py      # Database + in-memory queues
    │   ├── background.py  # Detached side-effect tasks
    │   ├── notifications.py # Test-vote DMs via Discord REST
    │   └── embeds.py      # Discord embed builders
    └── api/
        ├── main.py        # FastAPI app
        ├── deps.py        # Dependency wiring
        └── routes/
            └── webhooks.py  # POST /webhook/{topgg,dbl}/...
"""

__version__ = "0.1.0"
