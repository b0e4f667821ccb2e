# os_autopilot/core/capture.py
import base64
import io
import logging

from PIL import Image

from os_autopilot.core.adapters import BaseScreenAdapter
from os_autopilot.core.errors import CaptureError
from os_autopilot.core.geometry import agent_dimensions
from os_autopilot.core.tal import ImageBlock

logger = logging.getLogger(__name__)


class ScreenCapture:
    """Grabs the primary display and downsamples it to agent-space size."""

    def __init__(self, screen: BaseScreenAdapter):
        self.screen = screen

    def capture_image(self) -> Image.Image:
        try:
            display = self.screen.primary_display_info()
            sources = self.screen.list_display_sources()
        except CaptureError:
            raise
        except Exception as e:
            raise CaptureError(f"Screen capture failed: {e}") from e

        if not sources:
            raise CaptureError("No display found for screenshot")

        size = agent_dimensions(display)
        screenshot = sources[0].thumbnail
        if screenshot.size != size:
            screenshot = screenshot.resize(size, Image.LANCZOS)
        return screenshot

    def capture_base64(self) -> str:
        image = self.capture_image()
        buf = io.BytesIO()
        image.save(buf, format="PNG")
        logger.debug("Captured screenshot %sx%s (%d bytes)", image.width, image.height, buf.tell())
        return base64.b64encode(buf.getvalue()).decode("ascii")

    def capture_block(self) -> ImageBlock:
        return ImageBlock.from_base64(self.capture_base64())
