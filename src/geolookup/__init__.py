"""
geolookup - GeoLite2 City lookups with a crash-safe background updater

Internal addresses are labelled without touching the database; everything
else is looked up in a local MaxMind DB file that ``update_database`` keeps
fresh by atomically swapping in validated downloads.
"""

__version__ = "1.0.0"


# Lazy imports to avoid loading geoip2 and httpx when not needed
def __getattr__(name):
    """Lazy loading of package components to avoid unnecessary imports."""
    if name == "GeoLookupService":
        from .service import GeoLookupService

        return GeoLookupService
    elif name == "RangeClassifier":
        from .classifier import RangeClassifier

        return RangeClassifier
    elif name == "GeoSettings":
        from .config import GeoSettings

        return GeoSettings
    elif name == "Location":
        from .models import Location

        return Location
    raise AttributeError(f"module '{__name__}' has no attribute '{name}'")


# Define the public API of the package
__all__ = [
    "GeoLookupService",
    "RangeClassifier",
    "GeoSettings",
    "Location",
    "__version__",
]
