# siftstore

The storage layer of a small, schema-less search backend, in pure Python
using only the standard library.

It keeps two kinds of data per collection and bucket:

- a **key-value index** (`siftstore.kv`, `siftstore.kv_store`) that maps
  terms to internal object ids (IIDs), external object ids (OIDs) to IIDs
  and back, and IIDs to the terms they were indexed under. Each collection
  is one SQLite database in its own directory;
- a **word graph** (`siftstore.fst`, `siftstore.fst_graph`,
  `siftstore.fst_action`) holding the words seen in a bucket, used to
  complete prefixes and to suggest corrections for typos. Each bucket is one
  file of sorted words.

Pushed and popped words are queued and merged into the on-disk graph when
the pool consolidates; key-value stores are flushed periodically. Stores
that have not been used for a while are dropped from their pool by a
janitor. `siftstore.tasker` runs these jobs on a fixed interval.

## Names, hashes and keys

Collection, bucket and object names are validated with
`siftstore.item`: each must be non-empty ASCII of at most 128 characters.

```python
from siftstore.item import from_depth_2, InvalidBucketError

item = from_depth_2("c:test:2", "b:test:2")

try:
    from_depth_2("c:test:2", "")
except InvalidBucketError:
    ...
```

Terms and names are hashed to 32-bit atoms with xxHash32, seed 0
(`identifiers.xxh32`, `identifiers.term_hash`, `keyer.to_compact`). Index
keys (`keyer.StoreKey`) are 9 bytes: one `KeyIndex` byte, then the bucket
hash and a route value, both little-endian.

```python
from siftstore.identifiers import term_hash
from siftstore.keyer import term_to_iids, to_compact

bucket_atom = to_compact("bucket:2")
key = term_to_iids("bucket:2", term_hash("hello"))
key.raw          # the 9 key bytes
key.prefix()     # the first 5 bytes, shared by every key of this kind and bucket
print(key)       # index, bucket hash and route in hex, then the raw bytes
```

Ids and lists of ids are stored as packed little-endian 32-bit integers:

```python
from siftstore.kv_store import encode_u32_list, decode_u32_list

data = encode_u32_list([0, 2, 3])
assert decode_u32_list(data) == [0, 2, 3]
```

## Key-value index

```python
from pathlib import Path
from siftstore.identifiers import term_hash
from siftstore.kv import AcquireMode, KVAction, KVPool
from siftstore.kv_store import KVConfig

kv_pool = KVPool(KVConfig(path=Path("data/kv")))
store = kv_pool.acquire(AcquireMode.ANY, "messages")
action = KVAction("inbox", store)

action.set_oid_to_iid("conversation:1", 1)
action.set_iid_to_oid(1, "conversation:1")
action.set_term_to_iids(term_hash("hello"), [1])
action.set_iid_to_terms(1, [term_hash("hello")])

action.get_term_to_iids(term_hash("hello"))   # [1]
```

- `KVPool.acquire(mode, collection)` returns the collection's `StoreKV`,
  opening and caching it; in `AcquireMode.OPEN_ONLY` mode it returns
  `None` when the collection has nothing on disk yet.
- `KVAction` getters return `None` when nothing is stored (or when the
  action has no store); setters and deletes raise `StoreError` without one.
- `batch_flush_bucket`, `batch_truncate_object` and `batch_erase_bucket`
  remove an object, unlink a term from objects, and clear a whole bucket.
- `KVPool.flush(force)` checkpoints stores not flushed for
  `KVConfig.flush_after` seconds (all of them when `force` is true).
- `KVPool.erase(collection)` deletes a collection's directory and returns
  1, or 0 if there was none. Erasing a single bucket through the pool
  raises `StoreError`; use `KVAction.batch_erase_bucket` instead.

`KVConfig` holds `path`, `inactive_after`, `flush_after` and
`write_ahead_log`.

## Word graphs

```python
from pathlib import Path
from siftstore.fst import FSTPool
from siftstore.fst_action import FSTAction
from siftstore.fst_graph import FSTConfig

fst_pool = FSTPool(FSTConfig(path=Path("data/fst")))
action = FSTAction(fst_pool, fst_pool.acquire("messages", "inbox"))
action.push_word("valerian")

fst_pool.consolidate(force=True)

action = FSTAction(fst_pool, fst_pool.acquire("messages", "inbox"))
action.suggest_words("val", 5)   # ['valerian']
```

- `push_word` and `pop_word` queue a change and return whether it was
  queued; `count_words` counts the graph as loaded. Queued changes reach
  the graph only after `FSTPool.consolidate`, which writes the new file and
  drops the store from the pool so the next `acquire` loads it again.
- `suggest_words(from_word, limit, max_typo_factor)` first collects words
  beginning with `from_word`, then words within an edit distance that grows
  with the word's length (0 up to 3 bytes, 1 up to 6, 2 up to 9, else 3),
  capped by `max_typo_factor`. It returns `None` when nothing matches.
- Words longer than 40 UTF-8 bytes are ignored by all three.
- A graph stops accepting words at `FSTConfig.max_size` KiB or
  `FSTConfig.max_words` words.
- `FSTPool.erase(collection, bucket)` deletes one bucket's graph, or the
  whole collection when `bucket` is `None`; it returns 1, or 0 if nothing
  was on disk. `count_collection_buckets(collection)` counts stored graphs.

`FSTConfig` holds `path`, `inactive_after`, `consolidate_after`,
`max_size` and `max_words`.

## Backups

Both pools have `backup(path)` and `restore(path)`. Key-value backups are
database copies, one directory per collection hash. Word graph backups are
plain lists of words, one per line, in `<collection>/<bucket>.fst.bck`
files; restoring rebuilds each graph from them.

Failures of stores and files raise `siftstore.generic.StoreError`, a
subclass of `OSError`.

## Maintenance

```python
import threading
from siftstore.tasker import Tasker

stop = threading.Event()
tasker = Tasker(kv_pool, fst_pool, 10)
threading.Thread(target=tasker.run, args=(stop,), daemon=True).start()
```

Each tick runs both janitors, then flushes key-value stores and
consolidates word graphs that are due; `Tasker.tick()` runs one tick and
returns a `TickReport`. `ShutdownSignal().at_exit(handler)` blocks until
an interrupt, quit or terminate signal arrives and passes its number to
`handler`; `close()` puts back the previous signal handlers.

## Stopwords

```python
from siftstore.stopwords import is_stopword, stopwords_for

is_stopword("kodwa", "zul")   # True
```

Only Yiddish (`"yid"`) and Zulu (`"zul"`) lists are included; other codes
raise `ValueError`.

## What it does not do

This package is storage only. It has no network server or protocol, no
query parsing, tokenizing or search ranking, no configuration file
loading, and no command-line program: an application creates the pools
and calls them itself.