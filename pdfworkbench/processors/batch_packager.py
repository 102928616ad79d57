import io
import logging
import zipfile
from typing import Sequence

from ..errors import PackagingFailed
from ..models.results import Artifact, ZIP_MEDIA_TYPE

logging.basicConfig(level=logging.INFO)
logger = logging.getLogger(__name__)


class BatchPackager:
    """Bundle several artifacts into one ZIP download."""

    def __init__(self, compresslevel: int = 6):
        self.compresslevel = compresslevel

    def package(self, artifacts: Sequence[Artifact], archive_name: str) -> Artifact:
        """
        Write every artifact into a ZIP archive, in the given order and under
        its own filename.

        Raises:
            ValueError: no artifacts were given
            PackagingFailed: the archive could not be written
        """
        if not artifacts:
            raise ValueError("Cannot package an empty list of artifacts")

        buffer = io.BytesIO()
        try:
            with zipfile.ZipFile(buffer, "w", compression=zipfile.ZIP_DEFLATED,
                                 compresslevel=self.compresslevel) as archive:
                for artifact in artifacts:
                    archive.writestr(artifact.filename, artifact.data)
        except (zipfile.BadZipFile, OSError, ValueError) as e:
            logger.error(f"Failed to build {archive_name}: {e}")
            raise PackagingFailed("Failed to create ZIP file")

        data = buffer.getvalue()
        logger.info(f"Packaged {len(artifacts)} files into {archive_name} ({len(data)} bytes)")
        return Artifact(filename=archive_name, data=data, media_type=ZIP_MEDIA_TYPE)

    def bundle(self, artifacts: Sequence[Artifact], archive_name: str) -> Artifact:
        """Return a lone artifact as-is, otherwise package them all."""
        if len(artifacts) == 1:
            return artifacts[0]
        return self.package(artifacts, archive_name)
