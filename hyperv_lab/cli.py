"""
Command line entry point.

    hyperv-lab deploy <path> [--prefix PREFIX | --name NAME] [--check-existing]
    hyperv-lab drop <path>
"""

import argparse
import logging
import sys
from typing import List, Optional

from .config import LabSDKConfig
from .deploy import DeploymentCoordinator
from .exceptions import LabSDKException
from .hypervisor import PowerShellHypervisor
from .logging import setup_logging
from .models import RenamePolicy
from .teardown import TeardownCoordinator


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="hyperv-lab",
        description="Deploy and drop labs of Hyper-V virtual machines"
    )
    parser.add_argument("--config", help="YAML configuration file")
    parser.add_argument("--log-level", choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Override the configured log level")

    subparsers = parser.add_subparsers(dest="command", required=True)

    deploy = subparsers.add_parser("deploy", help="Import, connect and start every VM of a lab")
    deploy.add_argument("path", help="Lab directory")
    naming = deploy.add_mutually_exclusive_group()
    naming.add_argument("--prefix", help="Name each VM '<prefix>_<original name>'")
    naming.add_argument("--name", help="Give the imported VM this name (single-VM labs)")
    deploy.add_argument("--check-existing", action="store_true",
                        help="Refuse to deploy while VMs from the previous deploy still exist")

    drop = subparsers.add_parser("drop", help="Stop and delete a deployed lab")
    drop.add_argument("path", help="Lab directory")

    return parser


def load_config(args: argparse.Namespace) -> LabSDKConfig:
    if args.config:
        config = LabSDKConfig.from_file(args.config)
    else:
        config = LabSDKConfig.from_environment()

    if args.log_level:
        config.logging.level = args.log_level
    if getattr(args, "check_existing", False):
        config.lab.check_existing_deployment = True
    return config


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    try:
        config = load_config(args)
        setup_logging(config.logging)
        hypervisor = PowerShellHypervisor(config.hypervisor)

        if args.command == "deploy":
            rename = None
            if args.prefix:
                rename = RenamePolicy.add_prefix(args.prefix)
            elif args.name:
                rename = RenamePolicy.new_name(args.name)
            DeploymentCoordinator(hypervisor, config).deploy(args.path, rename)
        else:
            TeardownCoordinator(hypervisor, config).teardown(args.path)
    except LabSDKException as e:
        logging.getLogger(__name__).debug("Run failed", exc_info=True)
        print(f"Error: {e}", file=sys.stderr)
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
