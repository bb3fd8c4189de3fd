"""Actionable error catalog for dockerupgrader."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "unsupported_os": {
        "what": "Could not determine a supported RHEL major version (got `{value}`).",
        "next": "Run the upgrade on a RHEL 8 or RHEL 9 host.",
    },
    "package_dir_missing": {
        "what": "Package directory not found: {path}",
        "next": "Extract docker-offline-packages.tar.gz to {root} and retry.",
    },
    "no_packages": {
        "what": "No RPM packages found in {path}",
        "next": "Check that the offline bundle was extracted completely.",
    },
    "backup_failed": {
        "what": "Could not create backup directory {path}: {error}",
        "next": "Check free space and permissions on the backup location.",
    },
    "drain_aborted": {
        "what": "Upgrade aborted before stopping services: {reason}",
        "next": "Drain the node from a swarm manager (`docker node update --availability drain`) and retry.",
    },
    "package_transition_failed": {
        "what": "Package transition failed using the `{strategy}` strategy.",
        "next": "Inspect {log_file}, then run `docker-upgrader recover` or `docker-upgrader rollback`.",
    },
    "config_generation_failed": {
        "what": "Could not write a containerd configuration to {path}: {error}",
        "next": "Run `containerd config default > {path}` manually before starting services.",
    },
    "filesystem_incompatible": {
        "what": "containerd data root {path} is on an incompatible filesystem ({detail}).",
        "next": "Move the data root to an xfs filesystem with ftype=1 or a non-xfs filesystem.",
    },
    "data_root_unverified": {
        "what": "Rewriting the data root in {config} to {path} could not be verified.",
        "next": "Edit the `root` key of {config} by hand and check it with `containerd config dump`.",
    },
    "service_not_active": {
        "what": "Service {service} is not active after start.",
        "next": "Inspect `journalctl -u {service}` and `systemctl status {service}`.",
    },
    "config_restore_failed": {
        "what": "Could not restore {source} to {path}: {error}",
        "next": "Copy the backup config into place by hand, or run `containerd config default > {path}`.",
    },
    "rollback_dir_missing": {
        "what": "Rollback directory not found: {path}",
        "next": "Extract the rollback packages to {path} and retry.",
    },
    "rollback_failed": {
        "what": "Downgrade of {packages} failed.",
        "next": "Inspect {log_file} and run `docker-upgrader recover`.",
    },
}


def actionable_error(code: str, **kwargs: str) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
