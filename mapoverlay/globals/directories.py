import pathlib as pl

BASE_DIR = pl.Path(__file__).resolve().parents[2]

LOGS_DIR = BASE_DIR / "logs"

# CONFIGURATION DIRECTORIES -----------
CONFIG_DIR = BASE_DIR / "config"

if __name__ == '__main__':
    print(f"{BASE_DIR=}")
    print(f"{CONFIG_DIR=}")
    print(f"{LOGS_DIR=}")
