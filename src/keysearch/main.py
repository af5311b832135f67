import argparse
import sys
import traceback
from typing import List, Optional

from keysearch.core.exceptions import ConfigurationError, KeySearchException
from keysearch.core.interfaces import KeySpace, MIN_KEY_WIDTH_BYTES, Target
from keysearch.search.chunk_search import ChunkSearch
from keysearch.search.worker import Worker
from keysearch.services.allocator_client import AllocatorClient
from keysearch.services.allocator_server import AllocatorServer
from keysearch.services.allocator_service import ChunkAllocator
from keysearch.services.key_tester import (
    MAX_KEY_WIDTH_BYTES, BlowfishKeyTester, decode_ciphertext, encrypt
)
from keysearch.utils.config import load_config
from keysearch.utils.logger import Logger


class _ArgumentParser(argparse.ArgumentParser):
    """Argument errors exit with status 1 like every other startup failure."""

    def error(self, message):
        self.print_usage(sys.stderr)
        raise ConfigurationError(message)


def _make_logger(config: dict, name: str) -> Logger:
    return Logger(
        name=name,
        level=config['logging']['level'],
        log_file=config['logging'].get('file'),
        console=config['logging']['console']
    )


def _banner(title: str, lines: List[str]) -> None:
    print(f"\n{'='*60}")
    print(title)
    print(f"{'='*60}")
    for line in lines:
        print(line)
    print(f"{'='*60}\n")


def build_allocator_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(prog="keysearch-allocator", description="Hand out key-space chunks to workers.")
    parser.add_argument("initial_key", type=int, help="first key to hand out")
    parser.add_argument("key_width", type=int, help=f"key width in bytes ({MIN_KEY_WIDTH_BYTES}-{MAX_KEY_WIDTH_BYTES})")
    parser.add_argument("ciphertext", help="base64 ciphertext to crack")
    parser.add_argument("--host", help="interface to bind (default from config)")
    parser.add_argument("--port", type=int, help="port to bind, 0 for ephemeral (default from config)")
    parser.add_argument("--config", help="path to a YAML config file")
    return parser


def build_worker_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(prog="keysearch-worker", description="Search key-space chunks from an allocator.")
    parser.add_argument("host", help="allocator host")
    parser.add_argument("port", type=int, help="allocator port")
    parser.add_argument("chunk_size", type=int, help="keys to request per cycle")
    parser.add_argument("--config", help="path to a YAML config file")
    return parser


def build_encrypt_parser() -> argparse.ArgumentParser:
    parser = _ArgumentParser(prog="keysearch-encrypt", description="Encrypt the known plaintext to make a challenge.")
    parser.add_argument("key", type=int, help="key to encrypt with")
    parser.add_argument("key_width", type=int, help=f"key width in bytes ({MIN_KEY_WIDTH_BYTES}-{MAX_KEY_WIDTH_BYTES})")
    parser.add_argument("--plaintext", help="plaintext to encrypt (default from config)")
    parser.add_argument("--config", help="path to a YAML config file")
    return parser


def run_allocator(args: argparse.Namespace, config: dict, logger: Logger) -> int:
    key_width = args.key_width
    if key_width < MIN_KEY_WIDTH_BYTES:
        logger.warning(f"Key width {key_width} below minimum, using {MIN_KEY_WIDTH_BYTES}")
        key_width = MIN_KEY_WIDTH_BYTES
    if key_width > MAX_KEY_WIDTH_BYTES:
        raise ConfigurationError(f"Key width must be at most {MAX_KEY_WIDTH_BYTES} bytes, got {key_width}")

    decode_ciphertext(args.ciphertext)

    key_space = KeySpace(key_width_bytes=key_width)
    allocator = ChunkAllocator(key_space.total_keys, initial_key=args.initial_key, logger=logger)
    target = Target(ciphertext=args.ciphertext, key_width_bytes=key_width)

    server = AllocatorServer(
        allocator=allocator,
        target=target,
        host=args.host or config['server']['host'],
        port=config['server']['port'] if args.port is None else args.port,
        poll_interval=config['server']['poll_interval'],
        logger=logger
    )

    try:
        _, port = server.start()
    except (OSError, OverflowError) as e:
        raise ConfigurationError(f"Cannot listen on {server.host}:{server.port}: {e}")
    print(f"Waiting for connections on {port}", flush=True)

    try:
        server.serve_forever()
    except KeyboardInterrupt:
        print("\nAllocator interrupted, outstanding chunks are lost.\n")

    stats = allocator.stats()
    lines = [
        f"Chunks granted: {stats.chunks_granted} ({stats.keys_granted} keys)",
        f"Chunks reported without key: {stats.reports_not_found}",
        f"Cursor: {stats.cursor}/{stats.total_keys}",
    ]
    if stats.found:
        lines.insert(0, f"Key: {stats.reported_key} ({stats.reported_key_hex})")
        if server.elapsed is not None:
            lines.insert(1, f"It took {server.elapsed * 1000:.0f} ms to find the key")
        _banner("[+] KEY FOUND", lines)
    else:
        _banner("ALLOCATOR STOPPED", lines)
    return 0


def run_worker(args: argparse.Namespace, config: dict, logger: Logger) -> int:
    client = AllocatorClient(
        host=args.host,
        port=args.port,
        connect_timeout=config['worker']['connect_timeout'],
        read_timeout=config['worker']['read_timeout'],
        logger=logger
    )

    if not client.is_alive():
        print(
            f"No allocator running on {args.host}:{args.port} to make requests.",
            file=sys.stderr
        )
        return 1

    known_plaintext = config['search']['known_plaintext']
    searcher = ChunkSearch(
        tester_factory=lambda target: BlowfishKeyTester(
            target.ciphertext, target.key_width_bytes, known_plaintext
        ),
        logger=logger,
        progress_interval=config['search']['progress_interval']
    )

    worker = Worker(
        client,
        searcher,
        chunk_size=args.chunk_size,
        logger=logger,
        retry_interval=config['worker']['retry_interval']
    )
    worker.install_signal_handlers()
    result = worker.run()

    if result is not None:
        _banner("[+] I FOUND THE KEY", [
            f"Key: {result.key}",
            f"Key (hex): {result.key_hex}",
        ])
    return 0


def run_encrypt(args: argparse.Namespace, config: dict, logger: Logger) -> int:
    if not MIN_KEY_WIDTH_BYTES <= args.key_width <= MAX_KEY_WIDTH_BYTES:
        raise ConfigurationError(
            f"Key width must be {MIN_KEY_WIDTH_BYTES}-{MAX_KEY_WIDTH_BYTES} bytes, got {args.key_width}"
        )
    if not 0 <= args.key < KeySpace(args.key_width).total_keys:
        raise ConfigurationError(f"Key {args.key} does not fit in {args.key_width} bytes")

    plaintext = args.plaintext or config['search']['known_plaintext']
    print(encrypt(plaintext, args.key, args.key_width))
    return 0


def _main(parser: argparse.ArgumentParser, runner, logger_name: str, argv: Optional[List[str]]) -> int:
    try:
        args = parser.parse_args(argv)
        config = load_config(args.config)
        logger = _make_logger(config, logger_name)
        return runner(args, config, logger)

    except KeySearchException as e:
        print(f"Error: {str(e)}", file=sys.stderr)
        return 1
    except KeyboardInterrupt:
        print("\n\nExiting...\n")
        return 0
    except Exception as e:
        print(f"Unexpected error: {str(e)}", file=sys.stderr)
        traceback.print_exc()
        return 3


def allocator_main(argv: Optional[List[str]] = None) -> int:
    return _main(build_allocator_parser(), run_allocator, "KeyAllocator", argv)


def worker_main(argv: Optional[List[str]] = None) -> int:
    return _main(build_worker_parser(), run_worker, "KeyWorker", argv)


def encrypt_main(argv: Optional[List[str]] = None) -> int:
    return _main(build_encrypt_parser(), run_encrypt, "KeyEncrypt", argv)

