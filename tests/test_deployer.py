"""Tests for the two-phase deployer."""

from unittest.mock import patch

import pytest

from o11y_deploy.config import parse_config
from o11y_deploy.core.errors import ConfigurationError, ExitCode, ModuleError, RunnerError
from o11y_deploy.deploy import Deployer, ordering_hazards
from o11y_deploy.labels import ADDRESS_LABEL, LabelSet
from o11y_deploy.modules import LinuxConfig


def static_discover(configs, sync_time):
    """Discovery double: expands static configs without an event loop."""
    return [
        LabelSet({ADDRESS_LABEL: target, **cfg.labels})
        for cfg in configs
        for target in cfg.targets
    ]


def group(name, targets, modules=None, labels=None, relabel_configs=None):
    static = {"targets": targets}
    if labels:
        static["labels"] = labels
    data = {"name": name, "modules": modules or {}, "targets": {"static_configs": [static]}}
    if relabel_configs:
        data["targets"]["relabel_configs"] = relabel_configs
    return data


def make_config(tmp_path, *groups, **global_cfg):
    return parse_config(
        {
            "global": {"data_directory": str(tmp_path / "data"), **global_cfg},
            "target_groups": list(groups),
        }
    )


def playbook_for(runner, group_name, playbook_name):
    for name, _inventory, playbooks in runner.calls:
        if name != group_name:
            continue
        for playbook in playbooks:
            if playbook.name == playbook_name:
                return playbook
    raise AssertionError(f"no {playbook_name} playbook for {group_name}")


PROMETHEUS = {"prometheus_module": {"enabled": True}}
LINUX = {"linux_module": {"enabled": True}}
GRAFANA = {"grafana_module": {"enabled": True}}


class TestDeployer:
    """Tests for Deployer.run()."""

    def test_groups_run_in_order(self, tmp_path, runner):
        config = make_config(
            tmp_path,
            group("prometheus", ["10.0.0.1:22"], PROMETHEUS),
            group("web", ["10.0.0.2:22", "10.0.0.3:22"], LINUX),
        )

        result = Deployer(config, runner, discover=static_discover).run()

        assert runner.groups == ["prometheus", "web"]
        assert result.success
        assert [g.targets for g in result.groups] == [1, 2]

    def test_backend_scrapes_groups_configured_after_it(self, tmp_path, runner):
        config = make_config(
            tmp_path,
            group("prometheus", ["10.0.0.1:22"], PROMETHEUS),
            group("web", ["10.0.0.2:22"], LINUX),
        )

        Deployer(config, runner, discover=static_discover).run()

        jobs = playbook_for(runner, "prometheus", "Prometheus").vars["prometheus_scrape_configs"]
        linux = [j for j in jobs if j["job_name"] == "linux"][0]
        assert linux["static_configs"][0]["targets"] == ["10.0.0.2:9100"]
        assert linux["static_configs"][0]["labels"] == {"group_name": "web"}

        rule_groups = playbook_for(runner, "prometheus", "Prometheus").vars[
            "prometheus_alert_rules_groups"
        ]
        assert [g["name"] for g in rule_groups] == ["prometheus-prometheus", "web-linux"]

    def test_disabled_modules_are_skipped(self, tmp_path, runner):
        config = make_config(
            tmp_path,
            group("web", ["10.0.0.2:22"], {**LINUX, "grafana_module": {"enabled": False}}),
        )

        Deployer(config, runner, discover=static_discover).run()

        [(_, _, playbooks)] = runner.calls
        assert [p.name for p in playbooks] == ["Linux"]

    def test_group_without_playbooks_skips_runner(self, tmp_path, runner):
        config = make_config(
            tmp_path,
            group("idle", ["10.0.0.9:22"]),
            group(
                "quiet",
                ["10.0.0.8:22"],
                {"linux_module": {"enabled": True, "enable_exporter": False}},
            ),
        )

        result = Deployer(config, runner, discover=static_discover).run()

        assert runner.calls == []
        assert [g.skipped for g in result.groups] == [True, True]
        assert result.success

    def test_inventory_host_vars(self, tmp_path, runner):
        config = make_config(
            tmp_path, group("prometheus", ["10.0.0.1:22"], PROMETHEUS, labels={"env": "prod"})
        )

        Deployer(config, runner, discover=static_discover).run()

        [(_, inventory, _)] = runner.calls
        variables = inventory.groups["all"].hosts["10.0.0.1:22"].variables
        assert variables["env"] == "prod"
        assert "o11y_prometheus_external_address" in variables

    def test_relabel_drop(self, tmp_path, runner):
        config = make_config(
            tmp_path,
            {
                "name": "web",
                "modules": LINUX,
                "targets": {
                    "static_configs": [
                        {"targets": ["a:22"], "labels": {"env": "prod"}},
                        {"targets": ["b:22"], "labels": {"env": "dev"}},
                    ],
                    "relabel_configs": [
                        {"source_labels": ["env"], "regex": "dev", "action": "drop"}
                    ],
                },
            },
        )

        Deployer(config, runner, discover=static_discover).run()

        [(_, inventory, _)] = runner.calls
        assert inventory.hosts == ["a:22"]

    def test_data_directory_created(self, tmp_path, runner):
        config = make_config(tmp_path, group("web", ["a:22"], LINUX))

        Deployer(config, runner, discover=static_discover).run()

        assert (tmp_path / "data").is_dir()

    def test_real_discovery(self, tmp_path, runner):
        config = make_config(tmp_path, group("web", ["a:22", "b:22"], LINUX), sd_sync_time="5s")

        Deployer(config, runner).run()

        [(_, inventory, _)] = runner.calls
        assert inventory.hosts == ["a:22", "b:22"]


class TestPrometheusServerOrdering:
    """Tests for publication of the metrics backend's servers."""

    def test_consumer_after_backend_sees_servers(self, tmp_path, runner):
        config = make_config(
            tmp_path,
            group("prometheus", ["10.0.0.1:22"], PROMETHEUS),
            group("dash", ["10.0.0.5:22"], GRAFANA),
        )

        Deployer(config, runner, discover=static_discover).run()

        datasources = playbook_for(runner, "dash", "Grafana").vars["grafana_datasources"]
        assert [d["name"] for d in datasources] == ["prometheus on 10.0.0.1"]
        assert ordering_hazards(config) == []

    def test_consumer_before_backend_sees_nothing(self, tmp_path, runner):
        config = make_config(
            tmp_path,
            group("dash", ["10.0.0.5:22"], GRAFANA),
            group("prometheus", ["10.0.0.1:22"], PROMETHEUS),
        )

        Deployer(config, runner, discover=static_discover).run()

        assert playbook_for(runner, "dash", "Grafana").vars["grafana_datasources"] == []
        assert ordering_hazards(config) == ["dash"]

    def test_missing_backend_group(self, tmp_path, runner):
        config = make_config(tmp_path, group("dash", ["10.0.0.5:22"], GRAFANA))

        Deployer(config, runner, discover=static_discover).run()

        assert playbook_for(runner, "dash", "Grafana").vars["grafana_datasources"] == []
        assert ordering_hazards(config) == ["dash"]

    def test_backend_without_prometheus_module_uses_hosts(self, tmp_path, runner):
        config = make_config(
            tmp_path,
            group("metrics", ["10.0.0.1:22"], LINUX),
            group("dash", ["10.0.0.5:22"], GRAFANA),
            metrics_backend_group="metrics",
        )

        Deployer(config, runner, discover=static_discover).run()

        [datasource] = playbook_for(runner, "dash", "Grafana").vars["grafana_datasources"]
        assert datasource["url"] == "http://10.0.0.1:22"


class TestDeployerFailures:
    """Tests for failure handling."""

    def test_runner_failure_continues_then_raises(self, tmp_path, runner):
        runner.fail = {"prometheus"}
        config = make_config(
            tmp_path,
            group("prometheus", ["10.0.0.1:22"], PROMETHEUS),
            group("web", ["10.0.0.2:22"], LINUX),
        )

        with pytest.raises(RunnerError) as exc_info:
            Deployer(config, runner, discover=static_discover).run()

        assert runner.groups == ["prometheus", "web"]
        assert exc_info.value.failures == {"prometheus": "prometheus exploded"}

    def test_runner_error_carries_result(self, tmp_path, runner):
        runner.fail = {"web"}
        config = make_config(
            tmp_path,
            group("prometheus", ["10.0.0.1:22"], PROMETHEUS),
            group("web", ["10.0.0.2:22"], LINUX),
        )

        with pytest.raises(RunnerError) as exc_info:
            Deployer(config, runner, discover=static_discover).run()

        result = exc_info.value.result
        assert not result.success
        assert [(g.name, g.success) for g in result.groups] == [
            ("prometheus", True),
            ("web", False),
        ]

    def test_projection_failure_aborts(self, tmp_path, runner):
        config = make_config(tmp_path, group("web", ["a:22"], LINUX))

        def discover(configs, sync_time):
            return [LabelSet({"env": "prod"})]

        with pytest.raises(ModuleError) as exc_info:
            Deployer(config, runner, discover=discover).run()

        assert exc_info.value.group == "web"
        assert exc_info.value.module == "linux"
        assert exc_info.value.phase == "targets"
        assert runner.calls == []

    def test_module_creation_failure_is_module_error(self, tmp_path, runner):
        config = make_config(tmp_path, group("web", ["a:22"], LINUX))

        with patch.object(LinuxConfig, "new_module", side_effect=RuntimeError("no role")):
            with pytest.raises(ModuleError, match="no role") as exc_info:
                Deployer(config, runner, discover=static_discover).run()

        assert exc_info.value.exit_code == ExitCode.MODULE_ERROR
        assert exc_info.value.module == "linux"
        assert exc_info.value.group == "web"
        assert exc_info.value.phase == "targets"
        assert runner.calls == []

    def test_zero_groups(self, tmp_path, runner):
        config = make_config(tmp_path)

        with pytest.raises(ConfigurationError, match="at least one target group"):
            Deployer(config, runner, discover=static_discover).run()

    def test_unwritable_data_directory(self, tmp_path, runner):
        blocker = tmp_path / "file"
        blocker.write_text("")
        config = make_config(
            tmp_path, group("web", ["a:22"], LINUX), data_directory=str(blocker / "data")
        )

        with pytest.raises(ConfigurationError, match="cannot create data directory"):
            Deployer(config, runner, discover=static_discover).run()
