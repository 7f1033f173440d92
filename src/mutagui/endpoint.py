"""Endpoint address parsing.

Mutagen accepts endpoints as local paths, ``[user@]host:path`` SSH
shorthand, ``ssh://`` URLs and ``docker://`` URLs.  Only what is needed to
prepare a directory before creating a session is extracted here.
"""

import os
from dataclasses import dataclass
from typing import Optional

LOCAL = "local"
SSH = "ssh"
DOCKER = "docker"


@dataclass(frozen=True)
class EndpointAddress:
    kind: str  # one of LOCAL, SSH, DOCKER
    path: str
    user: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None
    container: Optional[str] = None

    @classmethod
    def parse(cls, text):
        # type: (str) -> EndpointAddress
        if text.startswith("ssh://"):
            return cls._parse_ssh_url(text[len("ssh://") :])
        if text.startswith("docker://"):
            return cls._parse_docker_url(text[len("docker://") :])

        # [ipv6]:/path
        if text.startswith("["):
            end = text.find("]")
            if end != -1 and text[end + 1 : end + 2] == ":":
                return cls(kind=SSH, host=text[1:end], path=text[end + 2 :])

        # C:\path and D:/path are local on Windows
        if (
            len(text) >= 3
            and text[0].isascii()
            and text[0].isalpha()
            and text[1] == ":"
            and text[2] in ("\\", "/")
        ):
            return cls(kind=LOCAL, path=text)

        colon = text.find(":")
        if colon != -1:
            rest = text[colon + 1 :]
            if rest.startswith("/") or rest.startswith("~"):
                host_part = text[:colon]
                user = None  # type: Optional[str]
                if "@" in host_part:
                    user, host_part = host_part.split("@", 1)
                return cls(kind=SSH, user=user, host=host_part, path=rest)

        return cls(kind=LOCAL, path=text)

    @classmethod
    def _parse_ssh_url(cls, rest):
        # type: (str) -> EndpointAddress
        slash = rest.find("/")
        if slash == -1:
            authority, path = rest, "/"
        else:
            authority, path = rest[:slash], rest[slash:]
        user = None  # type: Optional[str]
        if "@" in authority:
            user, authority = authority.split("@", 1)
        port = None  # type: Optional[int]
        host = authority
        if ":" in authority:
            host, port_text = authority.split(":", 1)
            try:
                port = int(port_text)
            except ValueError:
                port = None
        return cls(kind=SSH, user=user, host=host, port=port, path=path)

    @classmethod
    def _parse_docker_url(cls, rest):
        # type: (str) -> EndpointAddress
        slash = rest.find("/")
        if slash == -1:
            return cls(kind=DOCKER, container=rest, path="/")
        return cls(kind=DOCKER, container=rest[:slash], path=rest[slash:])

    @property
    def is_local(self) -> bool:
        return self.kind == LOCAL

    def expand_tilde(self):
        # type: () -> EndpointAddress
        """Expand ``~`` and ``~/...`` for local paths; remote paths are untouched."""
        if self.kind != LOCAL:
            return self
        if self.path == "~" or self.path.startswith("~/"):
            return EndpointAddress(kind=LOCAL, path=os.path.expanduser(self.path))
        return self

    def ssh_destination(self):
        # type: () -> str
        if self.user:
            return "%s@%s" % (self.user, self.host)
        return self.host or ""
