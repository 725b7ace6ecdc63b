"""Centralized constants for all modules."""

# Database
DATABASE_FILENAME = "GeoLite2-City.mmdb"
DEFAULT_DB_PATH = "data/GeoLite2-City.mmdb"
DEFAULT_DB_URL = (
    "https://download.maxmind.com/app/geoip_download?"
    "edition_id=GeoLite2-City&license_key={key}&suffix=tar.gz"
)
STAGING_PREFIX = "geolite."
STAGING_SUFFIX = ".mmdb.tmp"

# Update pipeline limits
MAX_AGE_DAYS = 14
DOWNLOAD_TIMEOUT = 600  # seconds
MAX_DATABASE_SIZE = 300 * 1024 * 1024  # 300 MiB decompressed
MAX_ARCHIVE_ENTRIES = 10000
COPY_CHUNK_SIZE = 64 * 1024

# Synthetic labels for addresses that never reach the database
INTERNAL_NETWORK = "Internal Network"
LAN = "LAN"
TAILSCALE = "Tailscale"
LOCALHOST = "localhost"

# Built-in ranges, checked in this order after the configured IPv6 ranges
TAILSCALE_NETWORKS = ["100.64.0.0/10"]
PRIVATE_LAN_NETWORKS = ["10.0.0.0/8", "172.16.0.0/12", "192.168.0.0/16"]
LOCALHOST_NETWORKS = ["127.0.0.0/8", "::1/128"]
