from snapshot.models import Snapshot, new_timestamp, is_timestamp
from snapshot.manifest import Manifest
from snapshot.storage import SnapshotStore
