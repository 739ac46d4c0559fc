"""
receiver/cli.py
Command-line interface for mINd-RECEIVER.

USAGE:
  python -m receiver.cli --address +16125550001 --body "Hi"
  python -m receiver.cli --sms-file batches.json --workers 4
  python -m receiver.cli --serve --port 8766

--sms-file takes one batch or a list of batches:
  [{"sub_id": 1, "frames": [{"address": "+16125550001",
                             "body": "Hello ", "timestamp_ms": 1704067200000},
                            {"address": "+16125550001",
                             "body": "World", "timestamp_ms": 1704067200000}]}]
"""

import argparse
import json
import logging
import sys
import time
from pathlib import Path

from receiver.api import ReceiverAPI, serve
from receiver.config import load_config
from receiver.errors import ReceiverError
from receiver.models.record import Outcome, SmsBatch, SmsFrame
from receiver.worker import IngestionWorker

logger = logging.getLogger(__name__)

GREEN  = '\033[92m'
YELLOW = '\033[93m'
RED    = '\033[91m'
CYAN   = '\033[96m'
RESET  = '\033[0m'


def main(argv=None):
    parser = argparse.ArgumentParser(
        prog        = 'receiver',
        description = 'mINd-RECEIVER — inbound SMS/MMS ingestion',
        formatter_class = argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        '--db',
        type    = Path,
        default = None,
        help    = 'SQLite database path (default: db_path from receiver_config.json)',
    )
    parser.add_argument(
        '--sms-file', '-f',
        type    = Path,
        help    = 'JSON file with one SMS batch or a list of batches',
    )
    parser.add_argument(
        '--address', '-a',
        help    = 'Sender address for a single-frame SMS',
    )
    parser.add_argument(
        '--body', '-b',
        default = '',
        help    = 'Body for a single-frame SMS',
    )
    parser.add_argument(
        '--sub-id',
        type    = int,
        default = -1,
        help    = 'Subscription id for a single-frame SMS (default: -1)',
    )
    parser.add_argument(
        '--drop',
        action  = 'store_true',
        help    = 'Drop blocked messages for this run regardless of config',
    )
    parser.add_argument(
        '--workers', '-w',
        type    = int,
        default = None,
        help    = 'Worker threads for --sms-file (default: workers from config)',
    )
    parser.add_argument(
        '--serve',
        action  = 'store_true',
        help    = 'Start the HTTP API instead of processing messages',
    )
    parser.add_argument('--host', default=None, help='API host (default: from config)')
    parser.add_argument('--port', type=int, default=None, help='API port (default: from config)')
    parser.add_argument(
        '--verbose', '-v',
        action  = 'store_true',
        help    = 'Enable debug logging',
    )

    args = parser.parse_args(argv)

    # ── LOGGING SETUP ────────────────────────────────────────
    logging.basicConfig(
        level   = logging.DEBUG if args.verbose else logging.INFO,
        format  = '%(asctime)s [%(levelname)s] %(name)s: %(message)s',
        datefmt = '%H:%M:%S',
    )

    config = load_config(Path.cwd())
    if args.drop:
        config['drop_blocked'] = True
    db_path = args.db or Path(config['db_path'])

    if args.serve:
        serve(
            db_path,
            host = args.host or config['api_host'],
            port = args.port or config['api_port'],
        )
        return 0

    if not args.sms_file and not args.address:
        parser.error('one of --sms-file, --address or --serve is required')

    api = ReceiverAPI(db_path=db_path, config=config)
    try:
        if args.sms_file:
            batches = _load_batches(args.sms_file)
            return _replay(api, batches, args.workers or config['workers'])

        batch = SmsBatch(
            sub_id = args.sub_id,
            frames = (SmsFrame(args.address, args.body, int(time.time() * 1000)),),
        )
        result = api.pipeline.receive_sms(batch, api.settings())
        _report(result)
        return 0
    except ReceiverError as e:
        _print(f"{RED}Error: {e}{RESET}")
        return 1
    finally:
        api.close()


def _load_batches(path: Path):
    if not path.exists():
        raise SystemExit(f"File not found: {path}")
    data = json.loads(path.read_text(encoding='utf-8'))
    if isinstance(data, dict):
        data = [data]
    batches = []
    for item in data:
        frames = tuple(
            SmsFrame(
                address      = f['address'],
                body         = f.get('body'),
                timestamp_ms = int(f.get('timestamp_ms', 0)),
            )
            for f in item.get('frames', [])
        )
        batches.append(SmsBatch(sub_id=int(item.get('sub_id', -1)), frames=frames))
    return batches


def _replay(api: ReceiverAPI, batches, workers: int) -> int:
    t0 = time.time()
    failures = 0
    logger.info(f"Replaying {len(batches)} SMS batch(es) on {workers} worker(s)")
    with IngestionWorker(api.pipeline, api.settings, max_workers=workers) as worker:
        futures = [worker.submit_sms(b) for b in batches]
        for future in futures:
            try:
                _report(future.result())
            except (ReceiverError, ValueError):
                # already logged by the worker
                failures += 1

    _print(f"\n{len(batches)} batch(es) in {time.time() - t0:.1f}s, {failures} failed")
    return 1 if failures else 0


def _report(result) -> None:
    color = {
        Outcome.NOTIFIED:   GREEN,
        Outcome.SUPPRESSED: CYAN,
        Outcome.DROPPED:    YELLOW,
    }.get(result.outcome, RESET)
    _print(
        f"  {color}{result.outcome.value:<10}{RESET} "
        f"conversation={result.conversation_id} message={result.message_id} "
        f"action={result.action or '-'}"
    )


def _print(msg): print(msg)


if __name__ == '__main__':
    sys.exit(main())
