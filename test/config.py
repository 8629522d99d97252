import os


FIRESTORE_EMULATOR_HOST = os.getenv("FIRESTORE_EMULATOR_HOST")
# CI always runs against the Firestore emulator, so the emulator tests must not be skipped there.
RUNNING_IN_CI = os.getenv("CI") is not None
