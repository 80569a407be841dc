from pathlib import Path
from unittest import mock

import pytest

import kubeconverge.api
from kubeconverge.kinds import DeploymentKind, RoleKind
from kubeconverge.lifecycle import LifecycleController
from kubeconverge.models import ControllerConfig, Timeouts

from .conftest import K8sConfig, get_controller_config


class TestCompileConfig:
    def test_defaults(self):
        env = {"KUBECONFIG": "/tmp/kubeconf.yaml", "KUBECONTEXT": "kind-kind"}
        with mock.patch.dict("os.environ", values=env, clear=True):
            cfg, err = kubeconverge.api.compile_config()
        assert not err
        assert cfg == ControllerConfig(
            kubeconfig=Path("/tmp/kubeconf.yaml"),
            kubecontext="kind-kind",
            loglevel="info",
            default_namespace="default",
            poll_interval=2,
            max_poll_interval=20,
            timeouts=Timeouts(create=600, update=600, delete=600),
        )

    def test_custom(self):
        env = {
            "KUBECONFIG": "/tmp/kubeconf.yaml",
            "KUBECONTEXT": "kind-kind",
            "KUBECONVERGE_LOGLEVEL": "debug",
            "KUBECONVERGE_NAMESPACE": "apps",
            "KUBECONVERGE_POLL_INTERVAL": "0.5",
            "KUBECONVERGE_MAX_POLL_INTERVAL": "10",
            "KUBECONVERGE_CREATE_TIMEOUT": "120",
            "KUBECONVERGE_UPDATE_TIMEOUT": "60",
            "KUBECONVERGE_DELETE_TIMEOUT": "30",
        }
        with mock.patch.dict("os.environ", values=env, clear=True):
            cfg, err = kubeconverge.api.compile_config()
        assert not err
        assert cfg.loglevel == "debug"
        assert cfg.default_namespace == "apps"
        assert (cfg.poll_interval, cfg.max_poll_interval) == (0.5, 10)
        assert cfg.timeouts == Timeouts(create=120, update=60, delete=30)

    @pytest.mark.parametrize(
        "env",
        [
            {"KUBECONVERGE_CREATE_TIMEOUT": "ten"},
            {"KUBECONVERGE_POLL_INTERVAL": "0"},
            {"KUBECONVERGE_POLL_INTERVAL": "5", "KUBECONVERGE_MAX_POLL_INTERVAL": "2"},
        ],
    )
    def test_invalid(self, env: dict):
        env = env | {"KUBECONFIG": "/tmp/kubeconf.yaml", "KUBECONTEXT": "kind-kind"}
        with mock.patch.dict("os.environ", values=env, clear=True):
            _, err = kubeconverge.api.compile_config()
        assert err


class TestMakeController:
    @mock.patch.object(kubeconverge.api, "create_cluster_config")
    def test_make_controller(self, m_cc):
        k8scfg = K8sConfig()
        m_cc.return_value = (k8scfg, False)
        cfg = get_controller_config()

        ctrl, err = kubeconverge.api.make_controller(cfg, RoleKind())
        assert not err
        assert isinstance(ctrl, LifecycleController)
        assert ctrl.cfg is cfg
        assert ctrl.api.k8scfg is k8scfg
        assert ctrl.api.url("default", "pod-reader") == (
            "/apis/rbac.authorization.k8s.io/v1/namespaces/default/roles/pod-reader"
        )
        m_cc.assert_called_once_with(cfg.kubeconfig, cfg.kubecontext)

    @mock.patch.object(kubeconverge.api, "create_cluster_config")
    def test_make_controller_error(self, m_cc):
        m_cc.return_value = (K8sConfig(), True)
        _, err = kubeconverge.api.make_controller(get_controller_config(), DeploymentKind())
        assert err
