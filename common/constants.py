DEFAULT_NETWORK = "paseo"

NETWORKS = {
    "local": {
        "name": "local",
        "endpoints": {
            "Local Node": "ws://127.0.0.1:9944",
        },
        "unit": "DOT",
        "units": 10,
        "ss58": 0,
        "era_duration": 24 * 3600,
    },
    "polkadot": {
        "name": "polkadot",
        "endpoints": {
            "Automata 1RPC": "wss://1rpc.io/dot",
            "Dwellir": "wss://polkadot-rpc.dwellir.com",
            "IBP-GeoDNS1": "wss://rpc.ibp.network/polkadot",
            "IBP-GeoDNS2": "wss://rpc.dotters.network/polkadot",
            "LuckyFriday": "wss://rpc-polkadot.luckyfriday.io",
            "OnFinality": "wss://polkadot.api.onfinality.io/public-ws",
            "Stakeworld": "wss://dot-rpc.stakeworld.io",
            "Parity": "wss://rpc.polkadot.io",
        },
        "unit": "DOT",
        "units": 10,
        "ss58": 0,
        "era_duration": 24 * 3600,
    },
    "kusama": {
        "name": "kusama",
        "endpoints": {
            "Automata 1RPC": "wss://1rpc.io/ksm",
            "Dwellir": "wss://kusama-rpc.dwellir.com",
            "IBP-GeoDNS1": "wss://rpc.ibp.network/kusama",
            "IBP-GeoDNS2": "wss://rpc.dotters.network/kusama",
            "LuckyFriday": "wss://rpc-kusama.luckyfriday.io",
            "OnFinality": "wss://kusama.api.onfinality.io/public-ws",
            "Stakeworld": "wss://ksm-rpc.stakeworld.io",
        },
        "unit": "KSM",
        "units": 12,
        "ss58": 2,
        "era_duration": 6 * 3600,
    },
    "westend": {
        "name": "westend",
        "endpoints": {
            "Dwellir": "wss://westend-rpc.dwellir.com",
            "IBP-GeoDNS1": "wss://rpc.ibp.network/westend",
            "IBP-GeoDNS2": "wss://rpc.dotters.network/westend",
            "LuckyFriday": "wss://rpc-westend.luckyfriday.io",
            "OnFinality": "wss://westend.api.onfinality.io/public-ws",
            "Stakeworld": "wss://wnd-rpc.stakeworld.io",
        },
        "unit": "WND",
        "units": 12,
        "ss58": 42,
        "era_duration": 6 * 3600,
    },
    "paseo": {
        "name": "paseo",
        "endpoints": {
            "Parity": "wss://rpc.paseo.polkadot.io",
            "Dwellir": "wss://paseo-rpc.dwellir.com",
            "IBP-GeoDNS1": "wss://rpc.ibp.network/paseo",
            "IBP-GeoDNS2": "wss://rpc.dotters.network/paseo",
            "LuckyFriday": "wss://rpc-paseo.luckyfriday.io",
            "OnFinality": "wss://paseo.api.onfinality.io/public-ws",
            "Stakeworld": "wss://paseo-rpc.stakeworld.io",
        },
        "unit": "PAS",
        "units": 10,
        "ss58": 0,
        "era_duration": 24 * 3600,
    },
}

# Perbill: 1_000_000_000 parts == 100%
PERBILL_PER_PERCENT = 10_000_000

# Era resolution
ERA_MAX_RETRIES = 6
ERA_RETRY_DELAY = 1.5

# Statistics windows
ERA_POINTS_WINDOW = 100
PERFORMANCE_WINDOW = 20
UPTIME_WINDOW = 10
MAX_POINTS_PER_ERA = 1000

# Batch loading
BATCH_CONCURRENCY = 8
FETCH_TIMEOUT = 5.0
PAGE_SIZE = 50

TOP_PERFORMERS = 5
RANK_SEGMENT_SIZE = 100

API_PORT = 8093
HEALTH_ENDPOINT = "/health"
