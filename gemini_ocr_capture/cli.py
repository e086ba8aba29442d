"""
Command line interface for Gemini OCR Capture.

Runs the same flow as the capture UI on an image file: OCR the image and put
the text on the clipboard. Also manages the stored settings and API key.
"""

import argparse
import asyncio
import getpass
import json
import sys
from pathlib import Path
from typing import List, Optional

import pyperclip
from PIL import Image

from . import get_version
from .core.config import ConfigStore
from .core.crypto import create_key_provider
from .core.exceptions import GeminiOcrError, InvalidArgumentError
from .core.settings import AppSettings, load_settings
from .ocr.gemini_client import OcrClient
from .ocr.transport import AiohttpTransport
from .utils.error_handler import ErrorHandler
from .utils.logger import get_logger, setup_logger


BOOLEAN_OPTIONS = {
    'display-ocr-result': 'display_ocr_result',
    'play-sound': 'play_sound_on_ocr_success',
}
TEXT_OPTIONS = {
    'language': 'language',
    'sound-file': 'custom_sound_file_path',
    'shortcut': 'fullscreen_shortcut',
}


def parse_bool(value: str) -> bool:
    lowered = value.lower()
    if lowered in ('true', '1', 'yes', 'on'):
        return True
    if lowered in ('false', '0', 'no', 'off'):
        return False
    raise InvalidArgumentError(f"Expected a boolean value, got '{value}'")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="gemini-ocr-capture",
        description="OCR images with the Gemini vision API and copy the text to the clipboard"
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {get_version()}")
    parser.add_argument("--log-level", help="Logging level (default: GEMINI_OCR_LOG_LEVEL or INFO)")

    subparsers = parser.add_subparsers(dest="command", required=True)

    ocr_parser = subparsers.add_parser("ocr", help="Extract text from an image file")
    ocr_parser.add_argument("image", help="Path to the image")
    ocr_parser.add_argument("--no-clipboard", action="store_true", help="Do not copy the text to the clipboard")
    ocr_parser.add_argument("--timeout", type=float, help="Deadline for the request in seconds")

    set_key_parser = subparsers.add_parser("set-key", help="Validate and store the API key")
    set_key_parser.add_argument("key", nargs="?", help="API key (prompted when omitted)")
    set_key_parser.add_argument("--skip-validation", action="store_true", help="Store without checking the key")

    validate_parser = subparsers.add_parser("validate-key", help="Check an API key against the API")
    validate_parser.add_argument("key", nargs="?", help="API key (default: stored key)")

    subparsers.add_parser("show-config", help="Print the current settings")

    set_parser = subparsers.add_parser("set", help="Change a setting")
    set_parser.add_argument("option", choices=sorted(list(BOOLEAN_OPTIONS) + list(TEXT_OPTIONS)))
    set_parser.add_argument("value")

    return parser


class CommandRunner:
    """Executes CLI commands against the settings store and OCR client."""

    def __init__(self, settings: AppSettings, store: ConfigStore):
        self.settings = settings
        self.store = store

    def ocr(self, args) -> int:
        path = Path(args.image)
        if not path.exists():
            raise InvalidArgumentError(f"Image not found: {path}")

        with Image.open(path) as image:
            image.load()
            text = asyncio.run(self._analyze(image, args.timeout))

        print(text)
        if not args.no_clipboard:
            try:
                pyperclip.copy(text)
            except pyperclip.PyperclipException as e:
                get_logger("cli").warning(f"Could not copy text to the clipboard: {e}")
        return 0

    async def _analyze(self, image, timeout: Optional[float]) -> str:
        transport = AiohttpTransport(timeout=self.settings.request_timeout)
        try:
            client = OcrClient(self.store, transport=transport, model=self.settings.model)
            return await client.analyze_image(image, timeout=timeout)
        finally:
            await transport.close()

    async def _validate(self, key: str) -> bool:
        # Validation must work before any key is stored
        transport = AiohttpTransport(timeout=self.settings.request_timeout)
        try:
            config = self.store.current_config
            config.api_key = key
            client = OcrClient(config, transport=transport, model=self.settings.model)
            return await client.validate_api_key(key)
        finally:
            await transport.close()

    def set_key(self, args) -> int:
        key = args.key or getpass.getpass("Gemini API key: ").strip()
        if not key:
            raise InvalidArgumentError("API key must not be empty")

        if not args.skip_validation and not asyncio.run(self._validate(key)):
            print("The API key was rejected by the API; not saved.", file=sys.stderr)
            return 1

        config = self.store.current_config
        config.api_key = key
        self.store.save(config)
        print(f"API key saved to {self.store.config_path}")
        return 0

    def validate_key(self, args) -> int:
        key = args.key or self.store.current_config.api_key
        if not key:
            print("No API key given or stored.", file=sys.stderr)
            return 1

        valid = asyncio.run(self._validate(key))
        print("valid" if valid else "invalid")
        return 0 if valid else 1

    def show_config(self, args) -> int:
        data = self.store.current_config.masked()
        data['config_path'] = str(self.store.config_path)
        print(json.dumps(data, indent=2, ensure_ascii=False))
        return 0

    def set_option(self, args) -> int:
        config = self.store.current_config
        if args.option in BOOLEAN_OPTIONS:
            setattr(config, BOOLEAN_OPTIONS[args.option], parse_bool(args.value))
        else:
            setattr(config, TEXT_OPTIONS[args.option], args.value or None)

        self.store.save(config)
        print(f"{args.option} = {args.value}")
        return 0

    def run(self, args) -> int:
        handlers = {
            "ocr": self.ocr,
            "set-key": self.set_key,
            "validate-key": self.validate_key,
            "show-config": self.show_config,
            "set": self.set_option,
        }
        return handlers[args.command](args)


def main(argv: Optional[List[str]] = None) -> int:
    """Entry point for the ``gemini-ocr-capture`` command."""
    args = build_parser().parse_args(argv)
    settings = load_settings()

    setup_logger(
        level=args.log_level or settings.log_level,
        log_to_file=settings.log_to_file,
        log_dir=str(settings.base_path / "logs"),
    )

    error_handler = ErrorHandler(
        settings.base_dir,
        notifier=lambda message: print(message, file=sys.stderr),
    )

    try:
        store = ConfigStore(
            settings.base_dir,
            key_provider=create_key_provider(settings.base_dir, settings.key_backend),
        )
        return CommandRunner(settings, store).run(args)
    except GeminiOcrError as e:
        error_handler.handle_error(e, context=f"Command '{args.command}' failed")
        return 1
    except OSError as e:
        error_handler.handle_error(e, context=f"Command '{args.command}' failed")
        return 1


if __name__ == "__main__":
    sys.exit(main())
