"""Event catalog: registry of every acquisition lifecycle event.

Defines blinker signals in a Namespace and an EVENT_CATALOG dict mapping
event names to metadata (label, description, payload keys).

Payload keys omit credentials and download URLs.
"""

from blinker import Namespace

grabarr_signals = Namespace()

CATALOG_VERSION = 1

# ---- Signal definitions --------------------------------------------------------

release_grabbed = grabarr_signals.signal("release_grabbed")
grab_deferred = grabarr_signals.signal("grab_deferred")
download_completed = grabarr_signals.signal("download_completed")
download_failed = grabarr_signals.signal("download_failed")
import_completed = grabarr_signals.signal("import_completed")
import_failed = grabarr_signals.signal("import_failed")
release_blocklisted = grabarr_signals.signal("release_blocklisted")
group_auto_blocked = grabarr_signals.signal("group_auto_blocked")
task_completed = grabarr_signals.signal("task_completed")

# ---- Catalog dict (machine-readable metadata) ----------------------------------

EVENT_CATALOG: dict[str, dict] = {
    "release_grabbed": {
        "signal": release_grabbed,
        "label": "Release Grabbed",
        "description": "A release was submitted to a download client.",
        "payload_keys": [
            "media_id",
            "download_id",
            "release_title",
            "indexer_name",
            "score",
            "is_upgrade",
        ],
    },
    "grab_deferred": {
        "signal": grab_deferred,
        "label": "Grab Deferred",
        "description": "A delay profile held a release back as a pending grab.",
        "payload_keys": [
            "media_id",
            "release_title",
            "score",
            "available_at",
        ],
    },
    "download_completed": {
        "signal": download_completed,
        "label": "Download Completed",
        "description": "A download client reported a finished job.",
        "payload_keys": [
            "download_id",
            "media_id",
            "title",
        ],
    },
    "download_failed": {
        "signal": download_failed,
        "label": "Download Failed",
        "description": "A download errored, stalled, or was refused by its client.",
        "payload_keys": [
            "download_id",
            "media_id",
            "title",
            "error",
            "retry_count",
            "will_retry",
        ],
    },
    "import_completed": {
        "signal": import_completed,
        "label": "Import Completed",
        "description": "A downloaded file was moved into its library.",
        "payload_keys": [
            "download_id",
            "media_id",
            "target_met",
            "is_upgrade",
        ],
    },
    "import_failed": {
        "signal": import_failed,
        "label": "Import Failed",
        "description": "Moving a downloaded file into its library failed.",
        "payload_keys": [
            "download_id",
            "media_id",
            "error",
        ],
    },
    "release_blocklisted": {
        "signal": release_blocklisted,
        "label": "Release Blocklisted",
        "description": "A release was added to the blocklist.",
        "payload_keys": [
            "release_title",
            "media_id",
            "reason",
        ],
    },
    "group_auto_blocked": {
        "signal": group_auto_blocked,
        "label": "Group Auto-Blocked",
        "description": "A release group crossed the failure threshold and was blocked.",
        "payload_keys": [
            "group",
            "failure_count",
        ],
    },
    "task_completed": {
        "signal": task_completed,
        "label": "Scheduled Task Completed",
        "description": "A scheduled task run finished (successfully or not).",
        "payload_keys": [
            "task",
            "status",
            "duration_ms",
            "error",
        ],
    },
}
