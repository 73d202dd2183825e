"""The Entware package init system."""

from __future__ import annotations

import os

from nxhost.initsys.common import (
    CommandError,
    InitService,
    create_with_template,
    exit_code,
    run,
)
from nxhost.service import Config, NotInstalledError, NotSupportedError, Status

RC_FUNC = "/opt/etc/init.d/rc.func"

TEMPLATE = """#!/bin/sh

ENABLED=yes
PROCS={{ name }}
ARGS=""
PREARGS=""
DESC=$PROCS
PATH=/opt/sbin:/opt/bin:/opt/usr/bin:/usr/local/sbin:/usr/local/bin:/usr/sbin:/usr/bin:/sbin:/bin

. /opt/etc/init.d/rc.func
"""


class EntwareService(InitService):
    """An init script under ``/opt/etc/init.d`` using Entware's rc.func."""

    @classmethod
    def detect(cls, config: Config):
        if not os.path.exists(RC_FUNC):
            raise NotSupportedError()
        return cls(
            config=config,
            path=f"/opt/etc/init.d/S09{config.name}",
            config_file=f"/opt/etc/{config.name}.conf",
        )

    def install(self) -> None:
        create_with_template(self.path, TEMPLATE, 0o755, self.config)

    def uninstall(self) -> None:
        try:
            os.remove(self.path)
        except FileNotFoundError:
            raise NotInstalledError() from None

    def status(self) -> Status:
        if not os.path.exists(self.path):
            return Status.NOT_INSTALLED
        try:
            run(self.path, "check")
        except CommandError as e:
            if exit_code(e) == 1:
                return Status.STOPPED
            raise
        return Status.RUNNING

    def start(self) -> None:
        run(self.path, "start")

    def stop(self) -> None:
        run(self.path, "stop")

    def restart(self) -> None:
        run(self.path, "restart")