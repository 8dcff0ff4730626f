"""Text extraction helpers for conversations."""

from driver_locator.services.extraction.load_id_extractor import extract_load_ids
from driver_locator.services.extraction.opt_out_detector import has_stop_command, is_stop_message

__all__ = ["extract_load_ids", "has_stop_command", "is_stop_message"]
