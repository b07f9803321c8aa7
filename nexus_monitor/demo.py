"""
Synthetic alerts for development builds.

One alert per detection family, timestamped relative to "now" so the
set always falls inside the default 24h window. Served by
``/api/demo-alerts`` and blended into alert results by the gateway when
demo mode is on.
"""

from __future__ import annotations

import time
from typing import Any

from nexus_monitor.types import Alert

# (age in seconds, alert fields)
_DEMO_ALERTS: list[tuple[int, dict[str, Any]]] = [
    (180, {
        "id": "demo-flash-loan-1",
        "chain": "polkadot",
        "chain_name": "Polkadot",
        "severity": "critical",
        "pattern": "Flash_Loan_Attack",
        "description": "Flash loan attack detected: Large borrow (150,000 DOT) followed by immediate swap and repay within single block",
        "confidence": 0.92,
        "evidence": [
            "Borrowed 150,000 DOT from liquidity pool",
            "Executed swap causing 8% price impact",
            "Repaid loan + 0.3% fee in same transaction",
        ],
        "transaction_hash": "0x7f9fade1c0d57a7af66ab4ead79fade1c0d57a7af66ab4ead7c2c2eb7b11a91385",
        "block_number": 18234567,
        "metadata": {"pool": "DOT/USDT Omnipool", "amount_borrowed": "150000 DOT", "profit": "12000 DOT"},
        "recommended_actions": [
            "Review transaction on block explorer",
            "Investigate borrower address for additional suspicious activity",
            "Alert liquidity pool maintainers",
        ],
    }),
    (420, {
        "id": "demo-mev-sandwich-1",
        "chain": "hydration",
        "chain_name": "Hydration",
        "severity": "high",
        "pattern": "MEV_Sandwich",
        "description": "MEV sandwich attack: Attacker frontran user swap with 50,000 HDX buy order, then backran with sell order",
        "confidence": 0.88,
        "evidence": [
            "Block #12345: Buy 50,000 HDX (position 3)",
            "Block #12345: Victim swap 10,000 USDT -> HDX (position 4)",
            "Block #12345: Sell 50,000 HDX (position 5)",
        ],
        "transaction_hash": "0x3a9fade1c0d57a7af66ab4ead79fade1c0d57a7af66ab4ead7c2c2eb7b11a91123",
        "block_number": 12345,
        "metadata": {"pool": "HDX/USDT Omnipool", "profit_usd": "$540"},
        "recommended_actions": [
            "Flag attacker address for monitoring",
            "Review mempool ordering mechanisms",
        ],
    }),
    (600, {
        "id": "demo-oracle-manip-1",
        "chain": "polkadot",
        "chain_name": "Polkadot",
        "severity": "critical",
        "pattern": "Oracle_Manipulation",
        "description": "Price oracle manipulation: Multiple large orders placed to manipulate TWAP oracle price by 12%",
        "confidence": 0.95,
        "evidence": [
            "3 coordinated accounts placed 2.3M DOT of orders",
            "TWAP oracle moved 12.4% within 4 blocks",
        ],
        "transaction_hash": "0x9fade1c0d57a7af66ab4ead79fade1c0d57a7af66ab4ead7c2c2eb7b11a91456",
        "block_number": 18234520,
        "metadata": {"volume": "2.3M DOT", "price_impact": "12.4%"},
        "recommended_actions": [
            "Pause lending markets that read this oracle",
            "Switch to a manipulation-resistant price feed",
        ],
    }),
    (900, {
        "id": "demo-crosschain-replay-1",
        "chain": "polkadot",
        "chain_name": "Polkadot",
        "severity": "high",
        "pattern": "CrossChainReplay",
        "description": "Cross-chain replay attack detected: Same message ID used across multiple parachains via Hyperbridge",
        "confidence": 0.86,
        "evidence": [
            "Message 0x7a8b9c... delivered to Asset Hub",
            "Same message 0x7a8b9c... resubmitted 2 blocks later",
        ],
        "transaction_hash": "0x2fade1c0d57a7af66ab4ead79fade1c0d57a7af66ab4ead7c2c2eb7b11a91789",
        "block_number": 18234500,
        "metadata": {"source_chain": "Polkadot Relay", "target_chain": "Asset Hub", "amount": "25000 DOT"},
        "recommended_actions": [
            "Verify message nonce tracking on the target chain",
            "Notify Hyperbridge relayers",
        ],
    }),
    (1200, {
        "id": "demo-liquidity-drain-1",
        "chain": "hydration",
        "chain_name": "Hydration",
        "severity": "medium",
        "pattern": "LiquidityDrain",
        "description": "Gradual liquidity drain: 22% of HDX/DOT Omnipool liquidity removed over 45-minute period",
        "confidence": 0.79,
        "evidence": [
            "15 withdrawals from 8 unique addresses",
            "Liquidity fell from 1.2M HDX to 936K HDX",
        ],
        "transaction_hash": "0x8fade1c0d57a7af66ab4ead79fade1c0d57a7af66ab4ead7c2c2eb7b11a91234",
        "block_number": 12300,
        "metadata": {"pool": "HDX/DOT Omnipool", "withdrawals": "15 transactions"},
        "recommended_actions": ["Watch the withdrawing addresses for further exits"],
    }),
    (1800, {
        "id": "demo-volume-anomaly-1",
        "chain": "kusama",
        "chain_name": "Kusama",
        "severity": "high",
        "pattern": "Volume_Anomaly",
        "description": "Abnormal trading volume spike: 850% increase in 5-minute window, possible pump-and-dump coordination",
        "confidence": 0.82,
        "evidence": [
            "KSM/USDT volume up 850% in 5 minutes",
            "12+ wallets trading in lockstep",
        ],
        "transaction_hash": "0x4fade1c0d57a7af66ab4ead79fade1c0d57a7af66ab4ead7c2c2eb7b11a91901",
        "block_number": 21345678,
        "metadata": {"pair": "KSM/USDT", "volume_increase": "850%"},
        "recommended_actions": ["Flag coordinated wallets", "Warn traders of possible pump-and-dump"],
    }),
    (2400, {
        "id": "demo-collateral-manip-1",
        "chain": "hydration",
        "chain_name": "Hydration",
        "severity": "medium",
        "pattern": "CollateralManipulation",
        "description": "Collateral ratio manipulation: User artificially inflating collateral value before large borrow",
        "confidence": 0.74,
        "evidence": [
            "Collateral token price pushed +15% before borrow",
            "80K USDT borrowed against 100K HDX",
        ],
        "transaction_hash": "0x6fade1c0d57a7af66ab4ead79fade1c0d57a7af66ab4ead7c2c2eb7b11a91567",
        "block_number": 12250,
        "metadata": {"collateral": "100K HDX", "borrowed": "80K USDT", "liquidation_risk": "High"},
        "recommended_actions": ["Review collateral oracle update frequency"],
    }),
    (3000, {
        "id": "demo-frontrun-1",
        "chain": "kusama",
        "chain_name": "Kusama",
        "severity": "low",
        "pattern": "FrontRunning",
        "description": "Frontrunning detected: Transaction executed immediately before victim with higher priority",
        "confidence": 0.68,
        "evidence": ["Attacker tx placed one slot ahead of victim with higher tip"],
        "transaction_hash": "0x567890abcdef1234567890abcdef1234567890abcdef1234567890abcdef1234",
        "block_number": 21345650,
        "metadata": {"victim_slippage": "2.1%", "attacker_profit": "~150 KSM"},
        "recommended_actions": [
            "Educate users about MEV protection",
            "Consider commit-reveal schemes",
        ],
    }),
]


def generate_demo_alerts(now: float | None = None) -> list[Alert]:
    """Return a fresh copy of the demo alert set, all unacknowledged."""
    now_s = int(time.time() if now is None else now)
    return [
        Alert(timestamp=now_s - age, acknowledged=False, **fields)
        for age, fields in _DEMO_ALERTS
    ]
