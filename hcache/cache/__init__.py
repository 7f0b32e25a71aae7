"""
Cache package.

Provides the Cache/Provider interfaces, the msgpack codecs and the Redis
implementation which stores values under "<prefix><name>_<key>" keys.
"""
