"""Finish with the proposed version."""

condition = {"release": {"next": str}}


def content(ctx):
    ctx.task.visualize({"type": "document", "title": "Next release", "body": ctx.data["release"]["next"]})
    ctx.task.complete({"next": ctx.data["release"]["next"]})
