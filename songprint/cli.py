"""
Command line interface.

Usage:
    songprint ingest ~/datasets/fma_small --pattern "*.mp3" --jobs 4
    songprint recognize query.mp3 --clip-length 10 --snr 5
    songprint recognize query.mp3 --plot-spectrogram query.png
    songprint songs
    songprint delete 12
    songprint evaluate ~/datasets/fma_small --snippets 3 --seconds 6
"""

import argparse
import logging
from pathlib import Path
from typing import List, Optional

from .audio import load_canonical
from .config import DB_PATH
from .errors import SongprintError
from .evaluation import evaluate_snippets
from .log import log_detail, log_section, log_step, log_success, setup_logging
from .peaks import extract_peaks
from .recognizer import LandmarkRecognizer, folder_title
from .spectrogram import build_spectrogram
from .store import SQLiteFingerprintStore

logger = logging.getLogger(__name__)


def cmd_ingest(recognizer: LandmarkRecognizer, args) -> int:
    path = Path(args.path).expanduser()
    if path.is_dir():
        log_step(1, f"Indexing {path} ({args.pattern})")
        added = recognizer.index_folder(path, args.pattern, n_jobs=args.jobs)
        log_success(f"{added} new songs, {recognizer.num_indexed_songs} indexed in total")
    elif path.is_file():
        song = recognizer.index_song(path)
        if song is None:
            log_success(f"'{path.stem}' is already indexed")
        else:
            log_success(f"Indexed '{song.title}' as song {song.id}")
    else:
        logger.error("Path not found: %s", path)
        return 1
    return 0


def cmd_recognize(recognizer: LandmarkRecognizer, args) -> int:
    query_path = Path(args.path).expanduser()
    log_detail("Query", query_path.name)
    log_detail("Database", f"{recognizer.num_indexed_songs} songs indexed")

    signal = recognizer.prepare_query(
        query_path,
        clip_length_sec=args.clip_length,
        start_sec=args.start,
        snr_db=args.snr,
    )
    sr = recognizer.config.sample_rate
    match, metadata = recognizer.recognize(signal, sr)

    if match is not None:
        log_success(f"Match found: {metadata['title']} (song {match.song_id})")
        log_detail("Votes", f"{match.votes} (runner-up {match.runner_up_votes})")
        log_detail("Confidence", f"{match.confidence:.2%}")
        log_detail("Offset", f"{match.aligned_offset_seconds:.2f}s")
    else:
        print("\n✗ No match found")
    for candidate in metadata["candidates"]:
        log_detail(f"Candidate {candidate['song_id']}", f"{candidate['title']}: {candidate['votes']} votes")
    log_detail("Total time", f"{metadata['total_time']:.3f}s")

    if args.plot:
        from .plotting import plot_matching_pairs

        plot_matching_pairs(metadata["matching_pairs"], args.plot,
                            title=f"Matching pairs: {metadata['title'] or 'no match'}")
        log_detail("Plot", args.plot)
    if args.plot_spectrogram:
        from .plotting import plot_spectrogram_and_save

        spectrogram = build_spectrogram(signal, sr, recognizer.config)
        peaks = extract_peaks(spectrogram, recognizer.config)
        plot_spectrogram_and_save(spectrogram, peaks, args.plot_spectrogram)
        log_detail("Spectrogram", f"{args.plot_spectrogram} ({len(peaks)} peaks)")
    return 0


def cmd_songs(recognizer: LandmarkRecognizer, args) -> int:
    songs = recognizer.store.list_songs()
    for song in songs:
        print(f"{song.id:>6}  {song.title}  ({recognizer.store.count_fingerprints(song.id)} fingerprints)")
    print(f"{len(songs)} songs")
    return 0


def cmd_delete(recognizer: LandmarkRecognizer, args) -> int:
    if not recognizer.store.delete_song(args.song_id):
        logger.error("No song with id %d", args.song_id)
        return 1
    log_success(f"Deleted song {args.song_id}")
    return 0


def cmd_evaluate(recognizer: LandmarkRecognizer, args) -> int:
    folder = Path(args.folder).expanduser()
    if not folder.is_dir():
        logger.error("Folder not found: %s", folder)
        return 1

    log_step(1, "Indexing songs")
    recognizer.index_folder(folder, args.pattern, n_jobs=args.jobs)

    log_step(2, "Loading songs")
    songs = {}
    for path in sorted(folder.rglob(args.pattern)):
        song = recognizer.store.find_song(folder_title(folder, path))
        if song is None:
            continue
        songs[song.id] = load_canonical(path, recognizer.config)

    log_step(3, "Recognizing snippets")
    report = evaluate_snippets(recognizer, songs, snippets_per_song=args.snippets,
                               snippet_seconds=args.seconds, snr_db=args.snr, seed=args.seed)
    log_detail("Trials", str(report.total))
    log_detail("Accuracy", f"{report.accuracy:.2%} ({report.correct}/{report.total})")
    log_detail("No match", str(report.no_match))
    if report.mean_offset_error is not None:
        log_detail("Mean offset error", f"{report.mean_offset_error:.3f}s")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="songprint", description="Landmark audio fingerprinting")
    parser.add_argument('--db', type=str, default=DB_PATH,
                        help=f'SQLite fingerprint database (default: {DB_PATH})')
    parser.add_argument('--log-level', type=str, default=None, help='Logging level')
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("ingest", help="Index a song file or a folder of songs")
    p.add_argument("path", type=str)
    p.add_argument('--pattern', '-p', type=str, default='*.flac')
    p.add_argument('--jobs', '-j', type=int, default=1, help='Concurrent ingestion threads')
    p.set_defaults(func=cmd_ingest)

    p = sub.add_parser("recognize", help="Recognize an audio file")
    p.add_argument("path", type=str)
    p.add_argument('--clip-length', type=float, default=None,
                   help='Clip length in seconds (for testing with shorter clips)')
    p.add_argument('--start', type=float, default=None, help='Clip start in seconds (random if omitted)')
    p.add_argument('--snr', type=float, default=None,
                   help='SNR in dB for noise injection (for testing robustness)')
    p.add_argument('--plot', type=str, default=None, help='Save the matching pairs plot to this file')
    p.add_argument('--plot-spectrogram', type=str, default=None,
                   help='Save the query spectrogram with its peaks to this file')
    p.set_defaults(func=cmd_recognize)

    p = sub.add_parser("songs", help="List indexed songs")
    p.set_defaults(func=cmd_songs)

    p = sub.add_parser("delete", help="Delete a song and its fingerprints")
    p.add_argument("song_id", type=int)
    p.set_defaults(func=cmd_delete)

    p = sub.add_parser("evaluate", help="Accuracy on random snippets of the songs in a folder")
    p.add_argument("folder", type=str)
    p.add_argument('--pattern', '-p', type=str, default='*.flac')
    p.add_argument('--jobs', '-j', type=int, default=1)
    p.add_argument('--snippets', type=int, default=3, help='Snippets per song')
    p.add_argument('--seconds', type=float, default=6.0, help='Snippet length in seconds')
    p.add_argument('--snr', type=float, default=None)
    p.add_argument('--seed', type=int, default=42)
    p.set_defaults(func=cmd_evaluate)
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)
    setup_logging(args.log_level)
    log_section("🎵 songprint")

    store = None
    try:
        store = SQLiteFingerprintStore(args.db)
        return args.func(LandmarkRecognizer(store), args)
    except (SongprintError, ValueError) as exc:
        logger.error("%s failed: %s", args.command, exc)
        return 1
    finally:
        if store is not None:
            store.close()


if __name__ == '__main__':
    raise SystemExit(main())
