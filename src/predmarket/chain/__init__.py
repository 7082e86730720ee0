"""web3 access to the market contract: reads and signed actions."""
