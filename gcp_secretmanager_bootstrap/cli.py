"""CLI entrypoint for gcp-secret-bootstrap."""
import argparse
import logging
import sys

from ._version import __version__
from .config import load_config
from .exceptions import SecretBootstrapError
from .principals import RoleBinder
from .provisioning import ProvisioningJob
from .workload import WorkloadSecretBinding

logger = logging.getLogger(__name__)


def cmd_bind_roles(config, args):
    """Grant the writer and reader their bindings on the secret store."""
    binder = RoleBinder()
    for binding in config.identities().bindings(config.scope):
        changed = binder.apply(binding)
        state = "granted" if changed else "unchanged"
        print(f"{binding.principal.role} {binding.principal.id}: {binding.role} {state}")
    return 0


def cmd_provision(config, args):
    """Create any missing secrets using the writer principal."""
    job = ProvisioningJob(config.writer_store(),
                          config.descriptors(),
                          timeout=config.timeout)
    report = job.run()
    for outcome in report.outcomes:
        print(f"{outcome.name}: {outcome.state}")
    return 0


def cmd_check(config, args):
    """Resolve every workload secret with the reader principal without printing values."""
    binding = WorkloadSecretBinding(config.reader_store(), config.references())
    for env_var in sorted(binding.resolve()):
        print(f"{env_var}: resolved")
    return 0


def cmd_run(config, args):
    """Resolve workload secrets then exec the workload."""
    argv = list(args.workload)
    if argv and argv[0] == "--":
        argv = argv[1:]
    if not argv:
        print("Error: no workload command given", file=sys.stderr)
        return 2
    binding = WorkloadSecretBinding(config.reader_store(), config.references())
    binding.run_workload(argv)
    return 0


def build_parser():
    parser = argparse.ArgumentParser(
        prog="gcp-secret-bootstrap",
        description="Bootstrap deployment secrets and resolve them for a workload"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--config",
                        help="Deployment config json, a local path or gs://bucket/object")
    parser.add_argument("--log-level", default="INFO",
                        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
                        help="Logging level (default INFO)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    bind_parser = subparsers.add_parser("bind-roles", help="Grant writer and reader access")
    bind_parser.set_defaults(func=cmd_bind_roles)

    provision_parser = subparsers.add_parser("provision", help="Create missing secrets")
    provision_parser.set_defaults(func=cmd_provision)

    check_parser = subparsers.add_parser("check", help="Verify the reader resolves all secrets")
    check_parser.set_defaults(func=cmd_check)

    run_parser = subparsers.add_parser("run", help="Resolve secrets and exec the workload")
    run_parser.add_argument("workload", nargs=argparse.REMAINDER,
                            help="Workload command, after --")
    run_parser.set_defaults(func=cmd_run)

    return parser


def main(argv=None):
    parser = build_parser()
    args = parser.parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format="%(asctime)s %(levelname)s %(name)s %(message)s",
        stream=sys.stderr
    )

    try:
        config = load_config(args.config)
        return args.func(config, args)
    except SecretBootstrapError as e:
        logger.debug("Command failed", exc_info=True)
        print(f"Error: {type(e).__name__}: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
