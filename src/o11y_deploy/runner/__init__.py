"""Provisioning runners."""

from o11y_deploy.runner.ansible import AnsibleRunner, Runner, RunResult, prepare_inventory

__all__ = ["AnsibleRunner", "RunResult", "Runner", "prepare_inventory"]
