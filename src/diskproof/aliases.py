from diskproof.core.models import HashAlgorithm, Side

ALGORITHM_ALIASES = {
    "sha256": HashAlgorithm.SHA256,
    "sha-256": HashAlgorithm.SHA256,
    "xxh64": HashAlgorithm.XXH64,
    "xxhash": HashAlgorithm.XXH64,
}

ALGORITHM_CHOICES = list(ALGORITHM_ALIASES.keys())

ALGORITHM_HELP_TEXT = (
    "Digest algorithm for a new manifest:\n"
    "  sha256     : SHA-256, hashdeep compatible (default)\n"
    "  xxh64      : xxHash64, much faster, not cryptographic\n"
    "An existing manifest always keeps the algorithm in its header;\n"
    "asking for a different one is an error.\n"
)

SIDE_ALIASES = {
    "source": Side.SOURCE,
    "src": Side.SOURCE,
    "dest": Side.DEST,
    "destination": Side.DEST,
}

SIDE_CHOICES = list(SIDE_ALIASES.keys())

WORKERS_HELP_TEXT = (
    "Hashing workers per tree:\n"
    "  auto       : 8 on SSD, 3 on spinning or unknown media (default)\n"
    "  N          : exactly N workers\n"
)

ROOT_MAPPING_HELP_TEXT = (
    "Root prefix to strip from manifest paths before comparing (repeatable).\n"
    "  PREFIX           : strip PREFIX\n"
    "  PREFIX=CANON     : rewrite PREFIX to CANON\n"
    "Default: the 'Invoked from' root recorded in the manifest header\n"
)

EPILOG_TEXT = """
Examples:
  Hash both trees (resumable; re-run the same command after any interruption)
  %(prog)s hash --name Project_2015 --manifest-dir /Volumes/New/_manifests \\
      --source /Volumes/Old --dest /Volumes/New/Project_2015

  Stop cleanly from another terminal or a UPS monitor
  touch /tmp/diskproof.stop    (with --stop-file /tmp/diskproof.stop)

  Verify the copy and keep a detailed log
  %(prog)s verify --name Project_2015 --manifest-dir /Volumes/New/_manifests --detailed \\
      --log-dir /Volumes/New/_manifests/_logs

  Show duplicate content on the destination, largest waste first
  %(prog)s duplicates --name Project_2015 --manifest-dir /Volumes/New/_manifests --top 20

  Fast size-only sanity check before hashing
  %(prog)s quick-compare /Volumes/Old /Volumes/New/Project_2015

Exit codes: 0 ok/verified, 1 failed, 2 incomplete, 130 cancelled
"""
