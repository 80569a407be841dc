from typing import Any

import kubeconverge.migrate
from kubeconverge.flatmap import from_flatmap, to_flatmap
from kubeconverge.kinds import ResourceKind
from kubeconverge.models import VersionedRecord


def migrate_record(record: VersionedRecord, kind: ResourceKind) -> VersionedRecord:
    """Return `record` upgraded to the current schema version of `kind`."""
    attrs = kubeconverge.migrate.migrate(
        record.attributes, record.version, kind.migrations
    )

    # Empty records were never created and keep their version.
    version = kind.schema_version if len(attrs) > 0 else record.version
    return VersionedRecord(version=version, attributes=attrs)


def load_record(record: VersionedRecord, kind: ResourceKind) -> Any:
    """Return the configuration tree persisted in `record`.

    Migrates the record first if it was written by an older schema version.

    """
    record = migrate_record(record, kind)
    return from_flatmap(record.attributes, kind.config_model)


def dump_record(cfg: Any, kind: ResourceKind) -> VersionedRecord:
    """Return the record to persist for the configuration tree `cfg`."""
    return VersionedRecord(version=kind.schema_version, attributes=to_flatmap(cfg))
