"""Fetch the latest published release from the GitHub API."""

condition = {"repo": {"owner": str, "name": str}, "release": None}


async def content(ctx):
    repo = ctx.data["repo"]
    url = f"https://api.github.com/repos/{repo['owner']}/{repo['name']}/releases/latest"
    await ctx.connectors.fetch.request(url=url, into="release.latest")
