"""npm publish command building."""

from __future__ import annotations

from pubguard.core.models import DEFAULT_DIST_TAG, PublishCommand

NPM_EXECUTABLE = "npm"


class PublishCommandBuilder:
    """Builds the `npm publish` invocation for a distribution tag.

    The tag is used verbatim; tag syntax is validated by the configuration
    layer, not here.
    """

    def __init__(self, executable: str = NPM_EXECUTABLE) -> None:
        self._executable = executable

    def build(self, tag: str | None = None) -> PublishCommand:
        """Build the publish command.

        Args:
            tag: Distribution tag, `latest` when None

        Returns:
            PublishCommand whose string form is e.g. `npm publish --tag latest`
        """
        dist_tag = DEFAULT_DIST_TAG if tag is None else tag
        return PublishCommand(executable=self._executable, args=["publish", "--tag", dist_tag])
