"""Generate SBOMs with Syft and publish them through GitHub."""
