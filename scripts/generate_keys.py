#!/usr/bin/env python3
"""
Generate an account key for the batcher.

This script generates:
- A fresh secp256k1 private key
- Its checksummed address
- A .env file with the settings the batcher reads
"""

import argparse
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from eth_account import Account

from eoa_batcher.config import DEFAULT_IMPLEMENTATION, ChainId


RPC_URLS = {
    ChainId.BASE_SEPOLIA: "https://sepolia.base.org",
    ChainId.BASE_MAINNET: "https://mainnet.base.org",
}


def generate_keys(chain_id: int = ChainId.BASE_SEPOLIA) -> dict:
    """
    Generate a new account.

    Args:
        chain_id: Chain the .env entries point at

    Returns:
        Dictionary with the key, address and .env entries
    """
    account = Account.create()

    env = {
        "PRIVATE_KEY": "0x" + bytes(account.key).hex(),
        "RPC_URL": RPC_URLS.get(ChainId(chain_id), ""),
        "CHAIN_ID": str(int(chain_id)),
        "SMART_ACCOUNT_IMPLEMENTATION": DEFAULT_IMPLEMENTATION,
    }

    return {
        "address": account.address,
        "env": env,
    }


def main():
    parser = argparse.ArgumentParser(description="Generate an account key for the batcher")
    parser.add_argument(
        "--output", "-o",
        default=".env",
        help="File to write settings to (default: .env)"
    )
    parser.add_argument(
        "--chain-id",
        type=int,
        choices=[int(c) for c in ChainId],
        default=int(ChainId.BASE_SEPOLIA),
        help="Chain ID (default: 84532, Base Sepolia)"
    )
    parser.add_argument(
        "--force", "-f",
        action="store_true",
        help="Overwrite an existing settings file"
    )

    args = parser.parse_args()

    output_path = Path(args.output)
    if output_path.exists() and not args.force:
        print(f"⚠️  Settings already exist at {args.output}")
        print("   Use --force to overwrite")
        return

    print("🔑 Generating new account key...")
    info = generate_keys(args.chain_id)

    with open(output_path, "w") as f:
        for name, value in info["env"].items():
            f.write(f"{name}={value}\n")

    print("\n✅ Key generated successfully!")
    print(f"\n📁 Settings saved to: {args.output} (KEEP SECRET!)")
    print(f"\n📬 Address: {info['address']}")

    if args.chain_id == ChainId.BASE_SEPOLIA:
        print("\n💰 To fund on Base Sepolia:")
        print("   1. Get Sepolia ETH from a faucet")
        print("   2. Bridge it to Base Sepolia")
        print(f"   3. Send it to: {info['address']}")

    print("\n⚠️  IMPORTANT: Keep your private key secure!")


if __name__ == "__main__":
    main()
