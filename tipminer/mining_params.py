"""This module gathers mining parameters"""
# this is a bitcoin constant, maximum possible target, 00000000ffff0000000000000000000000000000000000000000000000000000
# (0xFFFF << 208).to_bytes(32, byteorder="big").hex()
# larger target means lower difficulty, so this is the lowest possible target!
diff_1_target = 0xFFFF << 208

# nonce is a U32 header field
nonce_space = 2 ** 32

# chain tip and new block notifications
tip_url = "https://blockchain.info/q/latesthash"
feed_url = "wss://ws.blockchain.info/inv"

# seconds between keep-alive pings on the feed session
ping_interval = 30

# seconds between hashrate reports of the search loop
hashrate_report_interval = 10
