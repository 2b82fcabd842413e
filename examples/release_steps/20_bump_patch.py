"""Compute the next patch version from the latest release tag."""

import re

condition = {"release": {"latest": {"tag_name": re.compile(r"^v?\d+\.\d+\.\d+$")}, "next": None}}


def content(ctx):
    tag = ctx.data["release"]["latest"]["tag_name"].lstrip("v")
    major, minor, patch = tag.split(".")
    ctx.data["release"]["next"] = f"{major}.{minor}.{int(patch) + 1}"
