"""
keyage — Basic Usage Example

Creates a throwaway store, writes a few entries, reads them back and shows
that another identity cannot open them.
"""

import shutil
import sys
import tempfile
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent))

from keyage import DecryptionError, SecretStore, StoreConfig, generate_identity


def main():
    print("=" * 50)
    print("  keyage — age-encrypted password store")
    print("=" * 50)

    workdir = Path(tempfile.mkdtemp(prefix="keyage-example-"))
    root = workdir / "store"
    root.mkdir()

    # A fresh identity, saved the way `keyage keygen` saves it
    identity = generate_identity()
    identity_file = workdir / "identity.txt"
    identity_file.write_text(f"{identity}\n")
    print(f"\nPublic key: {identity.to_public()}")

    store = SecretStore.from_config(StoreConfig(root, identity_file, str(identity.to_public())))

    secrets = {
        "site/login": "correct horse battery staple",
        "team/db-password": "s3cr3t",
        "notes/recovery.txt": "word word word word",
    }
    for name, secret in secrets.items():
        path = store.write(name, secret)
        print(f"  wrote {name:<22} -> {path.relative_to(root)} ({path.stat().st_size} bytes)")

    print(f"\nEntries: {store.entries()}")
    for name, secret in secrets.items():
        status = "PASS" if store.read(name).decode() == secret else "FAIL"
        print(f"  [{status}] {name}")

    print("\nAttempting read with another identity...")
    other = generate_identity()
    try:
        SecretStore(root, other, other.to_public()).read("site/login")
        print("  ERROR: Should have failed!")
    except DecryptionError:
        print("  Correctly rejected — wrong identity can't decrypt")

    store.delete("team")
    print(f"\nAfter removing team/: {store.entries()}")

    shutil.rmtree(workdir, ignore_errors=True)
    print("\nCleaned up example files.")


if __name__ == "__main__":
    main()
