from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Callable

from .albums import AlbumCatalog
from .config import Config, load_config
from .folder_sync import sync_folders
from .google_photos import GooglePhotosAPI
from .image_processing import ImageTranscoder
from .logging_utils import setup_logging
from .models import AlbumFileRecord
from .photo_service import PermissionDenied, PhotoServiceError
from .pipeline import PipelineError, SyncPipeline
from .resume import ResumeStore


def _add_common_args(p: argparse.ArgumentParser) -> None:
    p.add_argument("--state-dir", default=None, help="Directory for journals and caches (default: current directory)")
    p.add_argument("--album-medias", default=None, help="Album files journal, JSON lines (default: album_medias.json)")
    p.add_argument("--library-medias", default=None, help="Library journal, JSON lines (default: library_medias.json)")
    p.add_argument("--library-token", default=None, help="Library page token file (default: library_page_token.txt)")
    p.add_argument("--albums-cache", default=None, help="Album cache file, JSON lines (default: none for sync)")
    p.add_argument("--credentials", default=None, help="OAuth client secrets JSON (default: credentials.json)")
    p.add_argument(
        "--credentials-dir",
        default=None,
        help="Where the authorized token is stored (default: ~/.photobatch/credentials)",
    )
    p.add_argument("--log-dir", default=None, help="Also write photobatch.log to this directory")
    p.add_argument("--quiet", action="store_true", help="Reduce log verbosity (INFO level only, no DEBUG)")


def _config(args: argparse.Namespace, **overrides) -> Config:
    return load_config(
        state_dir=args.state_dir,
        album_medias=args.album_medias,
        library_medias=args.library_medias,
        library_token=args.library_token,
        albums_cache=args.albums_cache,
        credentials=args.credentials,
        credentials_dir=args.credentials_dir,
        **overrides,
    )


def _logger(args: argparse.Namespace) -> logging.Logger:
    log_dir = Path(args.log_dir).expanduser() if args.log_dir else None
    return setup_logging(log_dir=log_dir, verbose=not args.quiet)


def _service(cfg: Config, logger: logging.Logger) -> GooglePhotosAPI:
    return GooglePhotosAPI(
        credentials_path=cfg.credentials_path,
        credentials_dir=cfg.credentials_dir,
        list_attempts=cfg.album_list_attempts,
        logger=logger,
    )


def _guarded(logger: logging.Logger, what: str, fn: Callable[[], int]) -> int:
    try:
        return fn()
    except PermissionDenied as e:
        logger.error(f"{what} failed: {e}")
        logger.error("  Try: photobatch logout, then run the command again to re-authorize")
        return 1
    except (PhotoServiceError, PipelineError) as e:
        # These messages already include actionable guidance
        logger.error(f"{what} failed: {e}")
        return 1
    except KeyboardInterrupt:
        logger.warning(f"{what} interrupted")
        return 1
    except Exception as e:
        error_type = type(e).__name__
        logger.error(f"Unexpected error during {what} ({error_type}): {e}")
        logger.error(
            "  This is an unexpected error. Please report this issue with:\n"
            "    - The full error message above\n"
            "    - The command you ran"
        )
        return 1


def cmd_sync(args: argparse.Namespace) -> int:
    cfg = _config(args, resize_workers=args.resize_workers, max_dimension=args.max_dimension)
    logger = _logger(args)
    base = Path(args.base_folder).expanduser().resolve()
    folders = [Path(f).expanduser() for f in args.folders] or [base]

    def run() -> int:
        service = _service(cfg, logger)
        catalog = AlbumCatalog(
            service,
            cache_path=cfg.albums_cache_path,
            skip_album_load=args.skip_album_load,
            fixed_album_id=args.album_id,
            max_attempts=cfg.album_list_attempts,
            logger=logger,
        )
        pipeline = SyncPipeline.from_config(
            cfg,
            service,
            ImageTranscoder(logger=logger),
            skip_album_load=args.skip_album_load,
            logger=logger,
        )
        summary = sync_folders(base, folders, catalog=catalog, pipeline=pipeline, service=service, logger=logger)
        logger.info(f"Synced {summary.albums} albums: {summary.uploaded} files added, {summary.failed} failed")
        for title in summary.not_writable:
            logger.error(f"Album not writable, nothing uploaded: {title}")
        return 0

    return _guarded(logger, "sync", run)


def cmd_download(args: argparse.Namespace) -> int:
    cfg = _config(args)
    logger = _logger(args)
    cache = cfg.albums_cache_path or (cfg.state_dir / "albums_cache.json")

    def run() -> int:
        service = _service(cfg, logger)
        store = ResumeStore(
            album_medias_path=cfg.album_medias_path,
            library_medias_path=cfg.library_medias_path,
            library_token_path=cfg.library_token_path,
            logger=logger,
        )
        print("Loading albums...")
        catalog = AlbumCatalog(service, cache_path=cache, max_attempts=cfg.album_list_attempts, logger=logger)
        albums = catalog.list_all()
        scan = store.scan_albums(service, albums.values())
        lib = store.scan_library(service)
        if scan.failed:
            logger.error(f"{len(scan.failed)} albums could not be read; run download again to retry them")
        if not lib.complete:
            logger.error("Library scan stopped early; run download again to resume")
        return 0 if lib.complete and not scan.failed else 1

    return _guarded(logger, "download", run)


def cmd_report(args: argparse.Namespace) -> int:
    cfg = _config(args)
    logger = _logger(args)

    def run() -> int:
        store = ResumeStore(
            album_medias_path=cfg.album_medias_path,
            library_medias_path=cfg.library_medias_path,
            library_token_path=cfg.library_token_path,
            logger=logger,
        )
        print("Identifying orphaned files...", file=sys.stderr)
        report = store.reconcile()
        print(f"Total albums considered: {report.total_albums}", file=sys.stderr)
        print(f"Total library items: {report.total_library_items}", file=sys.stderr)
        print(f"Total unique items in albums: {report.total_unique_items_in_albums}", file=sys.stderr)
        print(f"Found {report.orphan_count} orphaned files.", file=sys.stderr)
        print(json.dumps(report.to_dict(), indent=2, ensure_ascii=False))
        return 0

    return _guarded(logger, "report", run)


def cmd_download_media(args: argparse.Namespace) -> int:
    cfg = _config(args)
    logger = _logger(args)

    def run() -> int:
        service = _service(cfg, logger)
        print(f"Fetching media item info for ID: {args.id}")
        item = service.get_media_item(args.id)
        print(f"Found media item: {item.filename}")
        out = service.download_media_item(item, Path(args.output_dir).expanduser())
        print(f"Downloaded to: {out.resolve()}")
        return 0

    return _guarded(logger, "download-media", run)


def cmd_add_to_album(args: argparse.Namespace) -> int:
    cfg = _config(args)
    logger = _logger(args)
    ids = list(args.media_ids) or [line.strip() for line in sys.stdin if line.strip()]
    if not ids:
        print("No media IDs provided.", file=sys.stderr)
        return 1

    def run() -> int:
        service = _service(cfg, logger)
        print(f"Adding {len(ids)} items to album {args.album_id}")
        service.batch_add_media_items(args.album_id, ids)
        print("Items added successfully.")
        return 0

    return _guarded(logger, "add-to-album", run)


def cmd_list_album(args: argparse.Namespace) -> int:
    cfg = _config(args)
    logger = _logger(args)

    def run() -> int:
        service = _service(cfg, logger)
        album = service.get_album(args.album_id)
        if album is None:
            logger.error(f"Album not found: {args.album_id}")
            return 1
        files = sorted(service.retrieve_files_from_album(album), key=lambda m: (m.filename, m.id))
        rec = AlbumFileRecord(album_name=album.title, album_id=album.id, files=files)
        print(json.dumps(rec.to_record(), indent=2, ensure_ascii=False))
        return 0

    return _guarded(logger, "list-album", run)


def cmd_set_description(args: argparse.Namespace) -> int:
    cfg = _config(args)
    logger = _logger(args)

    def run() -> int:
        service = _service(cfg, logger)
        item = service.update_media_item_description(args.media_id, args.description)
        print(f"Updated description of {item.filename or args.media_id}")
        return 0

    return _guarded(logger, "set-description", run)


def cmd_logout(args: argparse.Namespace) -> int:
    cfg = _config(args)
    logger = _logger(args)

    def run() -> int:
        _service(cfg, logger).logout()
        print(f"Removed stored credentials from {cfg.credentials_dir}")
        return 0

    return _guarded(logger, "logout", run)


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="photobatch")
    sub = p.add_subparsers(dest="cmd", required=True)

    p_sync = sub.add_parser("sync", help="Upload folders into albums named after their paths")
    _add_common_args(p_sync)
    p_sync.add_argument("base_folder", help="Root folder; album names are paths relative to it")
    p_sync.add_argument("folders", nargs="*", help="Folders under the base folder to sync (default: all of it)")
    p_sync.add_argument("--skip-album-load", action="store_true", help="Don't list existing albums or album contents")
    p_sync.add_argument("--album-id", default=None, help="Upload everything into this album id")
    p_sync.add_argument("--resize-workers", type=int, default=None, help="Resize threads (default: cores - 1)")
    p_sync.add_argument("--max-dimension", type=int, default=None, help="Max JPEG side in pixels (default: 4608)")
    p_sync.set_defaults(func=cmd_sync)

    p_dl = sub.add_parser("download", help="Scan albums and library into resumable journals")
    _add_common_args(p_dl)
    p_dl.set_defaults(func=cmd_download)

    p_rep = sub.add_parser("report", help="Report library items that belong to no album (JSON on stdout)")
    _add_common_args(p_rep)
    p_rep.set_defaults(func=cmd_report)

    p_dm = sub.add_parser("download-media", help="Download a single media item by ID")
    _add_common_args(p_dm)
    p_dm.add_argument("--id", "-i", required=True, help="Media item ID")
    p_dm.add_argument("--output-dir", default=".", help="Where to save the file (default: current directory)")
    p_dm.set_defaults(func=cmd_download_media)

    p_add = sub.add_parser("add-to-album", help="Add media items to an album (IDs from args or stdin)")
    _add_common_args(p_add)
    p_add.add_argument("--album-id", "-a", required=True, help="Target album ID")
    p_add.add_argument("media_ids", nargs="*", help="Media item IDs; read one per line from stdin when omitted")
    p_add.set_defaults(func=cmd_add_to_album)

    p_ls = sub.add_parser("list-album", help="List files in an album as JSON")
    _add_common_args(p_ls)
    p_ls.add_argument("--album-id", "-a", required=True, help="Album ID")
    p_ls.set_defaults(func=cmd_list_album)

    p_desc = sub.add_parser("set-description", help="Set the description of a media item")
    _add_common_args(p_desc)
    p_desc.add_argument("--media-id", "-m", required=True, help="Media item ID")
    p_desc.add_argument("--description", "-d", required=True, help="New description")
    p_desc.set_defaults(func=cmd_set_description)

    p_out = sub.add_parser("logout", help="Forget stored Google credentials")
    _add_common_args(p_out)
    p_out.set_defaults(func=cmd_logout)

    return p


def main(argv: list[str] | None = None) -> None:
    argv = argv if argv is not None else sys.argv[1:]
    parser = build_parser()
    args = parser.parse_args(argv)
    rc = args.func(args)
    raise SystemExit(rc)
