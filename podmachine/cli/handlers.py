"""Command handlers for the podmachine CLI."""

import shutil
from pathlib import Path

from ..cluster import resolve_cluster
from ..config import CREATE_FLAGS, DriverOptions
from ..driver import Driver
from ..errors import ConfigError
from ..host import HostRecord
from ..output import log_step, log_success

from .args import flag_dest


COMMANDS = {}


def command(name, aliases=()):
    """Register a command handler."""
    def decorator(fn):
        COMMANDS[name] = fn
        for alias in aliases:
            COMMANDS[alias] = fn
        return fn
    return decorator


def machine_dir(storage: Path, name: str) -> Path:
    """Store directory of a machine: <storage>/machines/<name>/"""
    return storage / "machines" / name


def load_driver(storage: Path, name: str) -> Driver:
    record = HostRecord.load(machine_dir(storage, name))
    if record is None:
        raise ConfigError(f"Machine '{name}' does not exist")
    return Driver.from_record(record)


@command("create")
def cmd_create(args, storage):
    store = machine_dir(storage, args.name)
    if HostRecord.load(store) is not None:
        raise ConfigError(f"Machine '{args.name}' already exists")

    values = {flag.name: getattr(args, flag_dest(flag.name), None) for flag in CREATE_FLAGS}
    options = DriverOptions.from_flags(values)
    driver = Driver(args.name, store, options, resolve_cluster(options.kube_token))

    driver.pre_create_check()
    driver.to_record().save()

    log_step("Generating SSH key...")
    driver.create()
    log_step(f"Creating host '{args.name}' in namespace {driver.cluster.namespace}...")
    driver.start()
    log_success(f"Machine '{args.name}' is running at {driver.get_url()}")


@command("start")
def cmd_start(args, storage):
    driver = load_driver(storage, args.name)
    log_step(f"Starting '{args.name}'...")
    driver.start()
    log_success(f"Machine '{args.name}' started at {driver.status.address}")


@command("stop")
def cmd_stop(args, storage):
    driver = load_driver(storage, args.name)
    log_step(f"Stopping '{args.name}'...")
    driver.stop()
    log_success(f"Machine '{args.name}' stopped")


@command("restart")
def cmd_restart(args, storage):
    driver = load_driver(storage, args.name)
    log_step(f"Restarting '{args.name}'...")
    driver.restart()
    log_success(f"Machine '{args.name}' restarted at {driver.status.address}")


@command("kill")
def cmd_kill(args, storage):
    load_driver(storage, args.name).kill()
    log_success(f"Machine '{args.name}' killed")


@command("rm", aliases=["remove"])
def cmd_rm(args, storage):
    driver = load_driver(storage, args.name)
    log_step(f"Removing '{args.name}'...")
    driver.remove()
    shutil.rmtree(driver.store_path, ignore_errors=True)
    log_success(f"Machine '{args.name}' removed")


@command("status")
def cmd_status(args, storage):
    print(load_driver(storage, args.name).get_state())


@command("ip")
def cmd_ip(args, storage):
    print(load_driver(storage, args.name).get_ip())


@command("url")
def cmd_url(args, storage):
    print(load_driver(storage, args.name).get_url())


@command("ssh-info")
def cmd_ssh_info(args, storage):
    driver = load_driver(storage, args.name)
    print(f"{driver.get_ssh_username()}@{driver.get_ssh_hostname()}:{driver.get_ssh_port()}")
    print(driver.get_ssh_key_path())
