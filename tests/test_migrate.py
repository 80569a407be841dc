import pytest

import kubeconverge.migrate as migrate
from kubeconverge.errors import UnknownVersion
from kubeconverge.kinds import DeploymentKind, RoleKind
from kubeconverge.models import VersionedRecord
from kubeconverge.state import dump_record, load_record, migrate_record

from .conftest import make_deployment_config


def v0_record() -> dict:
    """Return the attributes of a Deployment written by the v0 schema."""
    return {
        "name": "demo",
        "spec.0.replicas": "3",
        "spec.0.template.0.metadata.0.labels.%": "1",
        "spec.0.template.0.metadata.0.labels.app": "demo",
        "spec.0.template.0.container.#": "1",
        "spec.0.template.0.container.0.name": "nginx",
        "spec.0.template.0.container.0.image": "nginx:1.27",
        "spec.0.template.0.restart_policy": "Always",
    }


class TestMigrate:
    def test_schema_version(self):
        assert migrate.DEPLOYMENT_SCHEMA_VERSION == 2
        assert DeploymentKind.schema_version == 2
        assert RoleKind.schema_version == 0

    def test_rename(self):
        attrs = {"a": "1"}
        assert migrate.rename(attrs, "a", "b") is None
        assert attrs == {"b": "1"}

        # Existing values at the destination win.
        attrs = {"a": "1", "b": "2"}
        migrate.rename(attrs, "a", "b")
        assert attrs == {"b": "2"}

        # Empty destinations do not count.
        attrs = {"a": "1", "b": ""}
        migrate.rename(attrs, "a", "b")
        assert attrs == {"b": "1"}

    def test_latest_version_is_unchanged(self):
        attrs = {"metadata.0.name": "demo", "spec.0.replicas": "3", "spec.0.paused": "true"}
        out = migrate.migrate(attrs, 2, migrate.DEPLOYMENT_MIGRATIONS)
        assert out == attrs

    def test_name_moves_to_metadata(self):
        out = migrate.migrate(v0_record(), 0, migrate.DEPLOYMENT_MIGRATIONS)
        assert out["metadata.0.name"] == "demo"
        assert "name" not in out
        assert list(out.values()).count("demo") == 2  # name and template label

    def test_name_does_not_clobber_metadata(self):
        attrs = v0_record() | {"metadata.0.name": "existing"}
        out = migrate.migrate(attrs, 0, migrate.DEPLOYMENT_MIGRATIONS)
        assert out["metadata.0.name"] == "existing"
        assert "name" not in out

    def test_pod_spec_relocation(self):
        out = migrate.deployment_v0_to_v1(v0_record())
        assert out == {
            "metadata.0.name": "demo",
            "spec.0.replicas": "3",
            "spec.0.template.0.metadata.0.labels.%": "1",
            "spec.0.template.0.metadata.0.labels.app": "demo",
            "spec.0.template.0.spec.0.container.#": "1",
            "spec.0.template.0.spec.0.container.0.name": "nginx",
            "spec.0.template.0.spec.0.container.0.image": "nginx:1.27",
            "spec.0.template.0.spec.0.restart_policy": "Always",
        }

    def test_v1_to_v2_adds_defaults(self):
        out = migrate.deployment_v1_to_v2({"spec.0.replicas": "3"})
        assert out == {
            "spec.0.replicas": "3",
            "spec.0.paused": "false",
            "spec.0.progress_deadline_seconds": "600",
        }

        # Must not overwrite existing values.
        out = migrate.deployment_v1_to_v2({"spec.0.paused": "true"})
        assert out["spec.0.paused"] == "true"

    def test_empty_record(self):
        assert migrate.migrate({}, 0, migrate.DEPLOYMENT_MIGRATIONS) == {}

        # Version checks do not apply to empty records.
        assert migrate.migrate({}, 10, migrate.DEPLOYMENT_MIGRATIONS) == {}

    @pytest.mark.parametrize("version", [-1, 3, 10])
    def test_unknown_version(self, version: int):
        with pytest.raises(UnknownVersion) as exc:
            migrate.migrate({"name": "demo"}, version, migrate.DEPLOYMENT_MIGRATIONS)
        assert exc.value.version == version
        assert exc.value.latest == 2


class TestState:
    def test_migrate_record(self):
        kind = DeploymentKind()
        record = migrate_record(VersionedRecord(version=0, attributes=v0_record()), kind)
        assert record.version == 2
        assert record.attributes["metadata.0.name"] == "demo"
        assert record.attributes["spec.0.paused"] == "false"

        # Migrating again must be a no-op.
        assert migrate_record(record, kind) == record

        # Empty records keep their version.
        assert migrate_record(VersionedRecord(), kind) == VersionedRecord()

    def test_load_v0_record(self):
        record = VersionedRecord(version=0, attributes=v0_record())
        cfg = load_record(record, DeploymentKind())

        assert cfg.metadata[0].name == "demo"
        spec = cfg.spec[0]
        assert spec.replicas == 3
        assert spec.paused is False
        assert spec.progress_deadline_seconds == 600
        assert spec.template[0].metadata[0].labels == {"app": "demo"}

        pod = spec.template[0].spec[0]
        assert pod.restart_policy == "Always"
        assert [_.name for _ in pod.container] == ["nginx"]
        assert pod.container[0].image == "nginx:1.27"

    def test_dump_load(self):
        kind = DeploymentKind()
        cfg = make_deployment_config()

        record = dump_record(cfg, kind)
        assert record.version == 2
        assert record.attributes["metadata.0.name"] == "demo"
        assert record.attributes["spec.0.replicas"] == "3"

        assert load_record(record, kind) == cfg

    def test_load_future_record(self):
        record = VersionedRecord(version=5, attributes={"metadata.0.name": "demo"})
        with pytest.raises(UnknownVersion):
            load_record(record, DeploymentKind())
