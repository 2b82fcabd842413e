"""Drop tasks whose latest release has a non-semver tag."""

import re

condition = {"release": {"latest": {"tag_name": lambda tag: not re.match(r"^v?\d+\.\d+\.\d+$", tag)}}}


def content(ctx):
    ctx.logger.info(f"Ignoring non-semver tag {ctx.data['release']['latest']['tag_name']}")
    ctx.task.ignore()
