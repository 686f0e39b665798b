"""Two-phase deployment of target groups."""

from o11y_deploy.deploy.deployer import Deployer, GroupState, ordering_hazards
from o11y_deploy.deploy.inventory import generate_inventory
from o11y_deploy.deploy.results import DeployResult, GroupResult

__all__ = [
    "DeployResult",
    "Deployer",
    "GroupResult",
    "GroupState",
    "generate_inventory",
    "ordering_hazards",
]
