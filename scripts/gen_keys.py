# scripts/gen_keys.py
"""Create the RSA key pair both peers load at start-up. Usage:
python scripts/gen_keys.py --out . --bits 2048
"""
import argparse
from pathlib import Path

from netfile.crypto.keys import generate_keypair, write_keypair


def main():
    p = argparse.ArgumentParser()
    p.add_argument("--out", default=".", help="directory for public.pem and private.pem")
    p.add_argument("--bits", type=int, default=2048)
    args = p.parse_args()

    pub, priv = write_keypair(generate_keypair(args.bits), Path(args.out))
    print(f"Wrote {pub} and {priv}")


if __name__ == "__main__":
    main()
