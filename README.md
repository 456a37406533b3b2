# snapsync

snapsync is a small distributed file store that runs over plain TCP.
Clients talk to a single front server. That server keeps `.c` files
itself and hands every other supported type to a storage server of its
own:

| Extension | Kept by        | Listens on |
|-----------|----------------|------------|
| `.c`      | front server   | your choice |
| `.pdf`    | storage server | 9002       |
| `.txt`    | storage server | 9003       |
| `.zip`    | storage server | 9004       |

Clients only ever see the front server. Every path a client gives
starts at the virtual root `~S1`. A path such as `~S1/docs/report.pdf`
is stored under the root directory of whichever server owns that file
type (`./S1`, `./S2`, `./S3` or `./S4` by default).

## Installation

```
pip install .
```

To install the test tools as well:

```
pip install ".[test]"
```

## Running the servers

Start one storage server for each kind of file (`pdf`, `txt` and
`zip`; `S2`, `S3` and `S4` are accepted as well). Each one listens on
the fixed number shown in the table above:

```
snapsync-storage pdf
snapsync-storage txt
snapsync-storage zip
```

`--root DIR` changes the directory a storage server keeps its files in,
and `--host ADDR` the address it listens on.

Then start the front server, giving it the TCP number to listen on:

```
snapsync-server 9001
```

The front server takes `--root DIR` (where `.c` files are kept,
default `./S1`), `--host ADDR` and `--remote-host ADDR` (where the
storage servers run, default `127.0.0.1`).

## Using the client

```
snapsync-client localhost 9001
```

The client shows a `Delta ~ $` prompt and accepts these commands:

- `uploadf <file> <~S1/dest/dir>` sends a local file to the store.
- `downlf <~S1/path/to/file>` fetches a file into the current directory.
- `removef <~S1/path/to/file>` deletes a stored file.
- `downltar <.c|.pdf|.txt|.zip>` fetches a tar archive of every stored
  file of that type. It is saved as `cfiles.tar`, `pdffiles.tar`,
  `txtfiles.tar` or `zipfiles.tar`.
- `dispfnames <~S1/dir>` lists the files in a directory, gathered from
  all servers.

The client rejects any other command before sending it.

## Info server

`snapsync-info` starts a tiny server that greets each connection with
the host's name and its first non-loopback IPv4 address:

```
snapsync-info 9000
```

## Using it from Python

The building blocks can also be used directly:

- `snapsync.protocol`: `parse_command`, `send_sized`, `recv_sized`,
  `recv_exact`, path helpers and `ProtocolError`.
- `snapsync.storage`: `StorageServer` and `make_server`.
- `snapsync.relay`: `forward_file`, `relay_sized`, `relay_text`,
  `collect_listing` and `RelayError`.
- `snapsync.main_server.MainServer`.
- `snapsync.client.Client`, which is also a context manager.
- `snapsync.info_server`: `primary_ipv4`, `welcome_message` and `handle`.

## Limits

There is no authentication or encryption; anyone who can reach a server
can read, write and delete files. Only `.c`, `.pdf`, `.txt` and `.zip`
files are accepted. The storage servers always listen on their fixed
numbers, and file sizes are limited to what a 4-byte length header can
carry.