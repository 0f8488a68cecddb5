"""CouchDB document and view client in a single module. Also a command line tool.

Documents are Python objects with `id` and `rev` attributes, stored and
fetched under CouchDB's optimistic concurrency model. Design documents
declare their views explicitly, and views can be queried for the documents
they index.

Relies on 'requests': http://docs.python-requests.org/en/master/
"""

__version__ = "0.3.0"

# Standard packages
import argparse
import collections
import getpass
import io
import json
import logging
import os
import sys
import urllib.parse

# Third-party package: https://docs.python-requests.org/en/master/
import requests

JSON_MIME = "application/json"
DESIGN_PREFIX = "_design/"

logger = logging.getLogger("couchdocs")


def join_path(base_path, relative_path):
    """Join a relative path onto a base path using exactly one slash.

    An empty base path gives a path rooted at `/`.
    """
    if not base_path:
        return "/" + relative_path
    elif base_path.endswith("/"):
        return base_path + relative_path
    else:
        return base_path + "/" + relative_path


def join_uri(base_uri, relative_path):
    """Return the URI having the relative path joined onto the path of the
    base URI. Any query or fragment of the base URI is discarded.

    Unlike `urllib.parse.urljoin`, the last segment of the base path is
    always kept, with or without a trailing slash.
    """
    parts = urllib.parse.urlsplit(base_uri)
    return urllib.parse.urlunsplit((parts.scheme,
                                    parts.netloc,
                                    join_path(parts.path, relative_path),
                                    "",
                                    ""))


def _quote(segment):
    "Quote a name so that it forms a single URI path segment."
    return urllib.parse.quote(segment, safe="")


class Server:
    "An instance of the class is a connection to the CouchDB server."

    def __init__(self, href="http://localhost:5984/",
                 username=None, password=None, use_session=True, ca_file=None):
        """An instance of the class is a connection to the CouchDB server.

        - `href` is the URL to the CouchDB server itself.
        - `username` and `password` specify the CouchDB user account to use.
        - If `use_session` is `True`, then an authenticated session is used
          transparently. Otherwise, the values of `username` and `password` are
          sent with each request.
        - `ca_file` is a path to a file or a directory containing CAs if
          you need to access databases in HTTPS.
        """
        self.href = href.rstrip("/") + "/"
        self._session = requests.Session()
        self._session.headers.update({"Accept": JSON_MIME})
        if ca_file is not None:
            self._session.verify = ca_file
        if username and password:
            if use_session:
                self._POST(join_uri(self.href, "_session"),
                           json={"name": username, "password": password})
            else:
                self._session.auth = (username, password)

    @property
    def version(self):
        "Returns the version of the CouchDB server software."
        try:
            return self._version
        except AttributeError:
            self._version = self.get_version().version
            return self._version

    def __str__(self):
        "Returns a simple string representation of the server interface."
        return f"CouchDB {self.version} {self.href}"

    def __getitem__(self, name):
        "Opens the named database."
        return self.open(name)

    def __contains__(self, name):
        "Does the named database exist?"
        return self.database_exists(name)

    def __call__(self):
        "Returns meta information about the instance."
        return self._GET(self.href).json()

    def __del__(self):
        "Clean-up: Close the 'requests' session."
        session = getattr(self, "_session", None)
        if session is not None:
            session.close()

    def get_version(self):
        "Returns the welcome message and version of the server as a tuple."
        response = self._GET(self.href)
        return _from_json(ServerVersion, json.loads(response.text))

    def database_uri(self, name):
        "Returns the URI of the named database."
        return join_uri(self.href, _quote(name))

    def open(self, name):
        """Returns a handle to the named database.

        Raises `NotFoundError` if the database does not exist.
        """
        self.get_database_info(name)
        return Database(self, name, check=False)

    def get(self, name, check=True):
        """Gets the named database. Returns an instance of class `Database`.

        Raises `NotFoundError` if `check` is `True` and the database
        does not exist.
        """
        return Database(self, name, check=check)

    def create_database(self, name):
        """Creates the named database and returns a handle to it.

        Raises `RequestFailedError` if it already exists.
        """
        self._PUT(self.database_uri(name))
        return Database(self, name, check=False)

    def delete_database(self, name):
        "Deletes the named database. Raises `NotFoundError` if it is absent."
        self._DELETE(self.database_uri(name))

    def ensure_database_deleted(self, name):
        "Deletes the named database, if it exists."
        try:
            self.delete_database(name)
        except NotFoundError:
            logger.debug("Database %s did not exist", name)

    def database_exists(self, name):
        "Does the named database exist? Returns a boolean."
        try:
            self.get_database_info(name)
        except NotFoundError:
            return False
        return True

    def get_database_info(self, name):
        "Returns the metadata of the named database as a `DatabaseInfo`."
        response = self._GET(self.database_uri(name))
        return _from_json(DatabaseInfo, json.loads(response.text))

    def _GET(self, uri, **kwargs):
        "HTTP GET request to the CouchDB server, and check the response."
        kw = self._kwargs(kwargs, "headers", "params")
        return self._request("GET", uri, kw)

    def _PUT(self, uri, **kwargs):
        "HTTP PUT request to the CouchDB server, and check the response."
        kw = self._kwargs(kwargs, "json", "data", "headers")
        return self._request("PUT", uri, kw)

    def _POST(self, uri, **kwargs):
        "HTTP POST request to the CouchDB server, and check the response."
        kw = self._kwargs(kwargs, "json", "data", "headers", "params")
        return self._request("POST", uri, kw)

    def _DELETE(self, uri, **kwargs):
        "HTTP DELETE request to the CouchDB server, and check the response."
        kw = self._kwargs(kwargs, "headers")
        return self._request("DELETE", uri, kw)

    def _request(self, method, uri, kw):
        "Issue the request, and raise the classified error on failure."
        if isinstance(kw.get("data"), str):
            headers = dict(kw.get("headers") or {})
            headers.setdefault("Content-Type", JSON_MIME)
            kw["headers"] = headers
            kw["data"] = kw["data"].encode("utf-8")
        logger.debug("%s %s", method, uri)
        response = self._session.request(method, uri, **kw)
        self._check(response)
        return response

    def _kwargs(self, kwargs, *keys):
        "Return the kwargs for the specified keys."
        result = {}
        for key in keys:
            try:
                result[key] = kwargs[key]
            except KeyError:
                pass
        return result

    def _check(self, response):
        "Raise an exception if the response status code indicates an error."
        if 200 <= response.status_code < 300:
            return
        logger.debug("%s %s failed: %s", response.request.method,
                     response.url, response.status_code)
        raise classify_error(response.status_code, response.text,
                             default_reason=response.reason)


class Database:
    "An instance of the class is an interface to a CouchDB database."

    def __init__(self, server, name, check=True):
        self.server = server
        self.name = name
        if check:
            self.check()

    def __str__(self):
        "Returns the name of the CouchDB database."
        return self.name

    def __len__(self):
        "Returns the number of documents in the database."
        return self.get_info().doc_count

    def __contains__(self, id):
        "Does a document with the given identifier exist in the database?"
        try:
            self.get_raw(id)
        except NotFoundError:
            return False
        return True

    def __getitem__(self, id):
        "Returns the document with the given id."
        return self.get(id)

    @property
    def uri(self):
        "The URI of the database."
        return self.server.database_uri(self.name)

    def document_uri(self, id):
        "Returns the URI of the document with the given identifier."
        if id.startswith(DESIGN_PREFIX):
            return self.design_document_uri(id[len(DESIGN_PREFIX):])
        return join_uri(self.uri, _quote(id))

    def design_document_uri(self, designname):
        "Returns the URI of the named design document."
        return join_uri(join_uri(self.uri, "_design"), _quote(designname))

    def view_uri(self, designname, viewname):
        "Returns the URI of the named view in the named design document."
        return join_uri(join_uri(self.design_document_uri(designname), "_view"),
                        _quote(viewname))

    def exists(self):
        "Does the database exist? Return a boolean."
        return self.server.database_exists(self.name)

    def check(self):
        "Raises 'NotFoundError' if the database does not exist."
        self.get_info()

    def destroy(self):
        "Deletes the database and all its contents."
        self.server.delete_database(self.name)

    def get_info(self):
        "Returns the metadata of the database as a `DatabaseInfo`."
        return self.server.get_database_info(self.name)

    def get_raw(self, id):
        """Returns the JSON text of the document with the given identifier.

        Raises `NotFoundError` if there is no such document.
        """
        response = self.server._GET(self.document_uri(id))
        return response.text

    def get(self, id, cls=None):
        """Returns the document with the given identifier as an instance
        of `cls`, which defaults to `Document`.
        """
        return deserialize(cls or Document, self.get_raw(id))

    def put_raw(self, content, id):
        """Stores the JSON text as the document with the given identifier,
        creating or updating it. Returns the JSON text of the result,
        containing the items `ok`, `id` and `rev`.
        """
        response = self.server._PUT(self.document_uri(id), data=content)
        return response.text

    def post_raw(self, content):
        """Stores the JSON text as a new document having a server-assigned
        identifier. Returns the JSON text of the result, containing the
        items `ok`, `id` and `rev`.
        """
        response = self.server._POST(self.uri, data=content)
        return response.text

    def create(self, doc):
        """Stores a new document, which must not have a revision.

        If the document has an identifier, it is stored under it, else
        the server assigns one. The identifier and revision are set in the
        document, which is returned.
        """
        if doc.rev:
            raise InvalidArgumentError(
                f"New documents must not have a parent revision;"
                f" '{doc.rev}' specified.")
        if doc.id:
            return self.put(doc, doc.id)
        else:
            return self.post(doc)

    def update(self, doc):
        """Stores a revised version of an existing document.

        Both the identifier and the current revision must be set in the
        document. A stale revision raises `ConflictError`.
        """
        if not doc.id:
            raise InvalidArgumentError(
                f"Document to update (of type {type(doc).__name__}) must"
                f" have its id set (got '{doc.id}').")
        if not doc.rev:
            raise InvalidArgumentError(
                f"Document to update (of type {type(doc).__name__}, id"
                f" '{doc.id}') must have its current rev set.")
        return self.put(doc, doc.id)

    def put(self, doc, id):
        "Stores the document under the given identifier, and returns it."
        result = json.loads(self.put_raw(serialize(doc), id))
        return _assign_result(doc, _from_json(CreationResult, result))

    def post(self, doc):
        "Stores the document under a server-assigned identifier."
        result = json.loads(self.post_raw(serialize(doc)))
        return _assign_result(doc, _from_json(CreationResult, result))

    def get_design(self, design):
        "Returns the stored design document as a plain `Document`."
        return self.get(DESIGN_PREFIX + design_document_name(design))

    def upsert_design_document(self, design):
        """Creates the design document, or replaces the existing one.

        `design` is a `DesignDocument` subclass or instance. Returns the
        stored design document, having its new revision set.
        """
        if isinstance(design, type):
            ddoc = design()
        else:
            ddoc = design
        # The stored design document is fetched as a plain document;
        # only its revision is needed.
        try:
            logger.debug("Checking for existing design document %s", ddoc.id)
            existing = self.get(ddoc.id)
        except NotFoundError:
            logger.info("Design document %s does not exist; creating it",
                        ddoc.id)
            ddoc.rev = None
            return self.create(ddoc)
        logger.info("Design document %s exists; replacing it", ddoc.id)
        ddoc.rev = existing.rev
        return self.update(ddoc)

    def get_view_raw(self, design, view, include_docs=False):
        """Returns the JSON text of the result of querying the view.

        `design` and `view` are names, or the `DesignDocument` and `View`
        classes declaring them.
        """
        params = {}
        if include_docs:
            params["include_docs"] = _jsons(True)
        uri = self.view_uri(design_document_name(design), view_name(view))
        response = self.server._GET(uri, params=params)
        return response.text

    def view(self, design, view, include_docs=False, cls=None):
        """Query a view index to obtain data and/or documents.

        Returns a ViewResult instance, containing the following attributes:

        - `rows`: the list of Row instances.
        - `offset`: the offset used for the set of rows.
        - `total_rows`: the total number of rows selected.

        A Row object contains the following attributes:

        - `id`: the identifier of the document, if any.
        - `rev`: the revision of the document, if any.
        - `key`: the key for the index row.
        - `value`: the value for the index row.
        - `doc`: the document as an instance of `cls`, if `include_docs`
          was set.
        """
        data = json.loads(self.get_view_raw(design, view,
                                            include_docs=include_docs))
        return ViewResult.from_json(data, cls or Document)

    def get_docs_from_view(self, design, view, cls=None):
        """Returns the list of documents indexed by the view, in the order
        of the view's rows.
        """
        result = self.view(design, view, include_docs=True, cls=cls)
        return [row.doc for row in result.rows]


def _assign_result(doc, result):
    "Set the identifier and revision from the creation result into the doc."
    if _has_settable_id(doc):
        doc.id = result.id
    doc.rev = result.rev
    return doc


def _has_settable_id(doc):
    "Can the identifier of the document be assigned?"
    attr = getattr(type(doc), "id", None)
    if isinstance(attr, property):
        return attr.fset is not None
    return True


class Document:
    """A JSON document stored in a database.

    The reserved items `_id` and `_rev` are held in the attributes `id`
    and `rev`; any other public attribute is stored by its own name.
    Attributes that are `None`, or equal to a default declared on the
    class, are omitted from the stored JSON.

    Items whose names collide with the attributes `id`, `rev` or `fields`,
    or with a method of the class, are kept in the lookup `fields` and
    stored unchanged.
    """

    def __init__(self, id=None, rev=None, **fields):
        self.id = id
        self.rev = rev
        self.fields = dict()
        for key, value in fields.items():
            self._set_item(key, value)

    def __repr__(self):
        return f"{type(self).__name__}({self.to_json()!r})"

    def __eq__(self, other):
        if type(self) is not type(other):
            return NotImplemented
        return self.to_json() == other.to_json()

    def _set_item(self, key, value):
        "Set an item of the JSON document as an attribute, or in `fields`."
        if key in _RESERVED or callable(getattr(type(self), key, None)):
            self.fields[key] = value
        else:
            setattr(self, key, value)

    def to_json(self):
        "Return the document in a JSON-like representation."
        result = dict()
        if self.id:
            result["_id"] = self.id
        if self.rev:
            result["_rev"] = self.rev
        cls = type(self)
        for key, value in vars(self).items():
            if key in _RESERVED or key.startswith("_"):
                continue
            if value is None:
                continue
            if getattr(cls, key, _MISSING) == value:
                continue
            result[key] = value
        result.update(self.fields)
        return result

    @classmethod
    def from_json(cls, data):
        "Create a document from its JSON-like representation."
        doc = cls()
        for key, value in data.items():
            if key == "_id":
                doc.id = value
            elif key == "_rev":
                doc.rev = value
            elif key.startswith("_"):
                # Other CouchDB metadata, such as '_attachments'.
                continue
            else:
                doc._set_item(key, value)
        return doc


_MISSING = object()
_RESERVED = frozenset(["id", "rev", "fields"])


class View:
    """A view in a design document: JavaScript source for the map function
    and, optionally, the reduce function. The source is passed verbatim
    to the server.

    A view is declared either as a subclass having the class attributes
    `map` and `reduce`, or as an instance given them as arguments. Its name
    is the `name` attribute, if set, else the lower-cased class name.
    Instances are immutable.
    """

    name = None
    map = None
    reduce = None

    def __init__(self, name=None, map=None, reduce=None):
        if name is not None:
            object.__setattr__(self, "name", name)
        if map is not None:
            object.__setattr__(self, "map", map)
        if reduce is not None:
            object.__setattr__(self, "reduce", reduce)
        if not self.map:
            raise InvalidArgumentError(f"View '{self.get_name()}' has no"
                                       " map function.")

    def __setattr__(self, key, value):
        raise AttributeError(f"{type(self).__name__} is immutable")

    def __repr__(self):
        return f"{type(self).__name__}({self.get_name()!r})"

    def __eq__(self, other):
        if not isinstance(other, View):
            return NotImplemented
        return (self.get_name(), self.to_json()) == \
               (other.get_name(), other.to_json())

    def __hash__(self):
        return hash((self.get_name(), self.map, self.reduce))

    def get_name(self):
        "Return the name of the view."
        return self.name or type(self).__name__.lower()

    def to_json(self):
        "Return the view in a JSON-like representation."
        result = {"map": self.map}
        if self.reduce:
            result["reduce"] = self.reduce
        return result


class DesignDocument:
    """A design document: a document declaring views.

    Subclasses declare their views explicitly in the class attribute
    `views`, a sequence of `View` subclasses and/or instances. The name of
    the design document is the class attribute `name`, if set, else the
    class name. An instance may instead be given its name and views as
    arguments.

    The identifier is derived from the name, and cannot be assigned.
    """

    name = None
    views = ()

    def __init__(self, name=None, views=None, rev=None):
        if name is not None:
            self._name = name
        if views is not None:
            self._views = tuple(views)
        self.rev = rev

    def __repr__(self):
        return f"{type(self).__name__}({self.id!r})"

    @property
    def id(self):
        "The identifier: '_design/' followed by the name."
        return DESIGN_PREFIX + self.get_name()

    def get_name(self):
        "Return the name of the design document."
        try:
            return self._name
        except AttributeError:
            return design_document_name(type(self))

    def get_views(self):
        "Return a new lookup of view name to `View` instance."
        try:
            declared = self._views
        except AttributeError:
            declared = type(self).views
        result = dict()
        for view in declared:
            if isinstance(view, type):
                view = view()
            name = view.get_name()
            if name in result:
                raise InvalidArgumentError(f"Design document '{self.id}'"
                                           f" declares view '{name}' twice.")
            result[name] = view
        return result

    def to_json(self):
        "Return the design document in a JSON-like representation."
        result = {"_id": self.id}
        if self.rev:
            result["_rev"] = self.rev
        result["views"] = dict([(name, view.to_json())
                                for name, view in self.get_views().items()])
        return result


def design_document_name(design):
    """Return the name of the design document given as a `DesignDocument`
    subclass, an instance of one, or a plain name.
    """
    if isinstance(design, str):
        return design
    if isinstance(design, DesignDocument):
        return design.get_name()
    return design.name or design.__name__


def view_name(view):
    "Return the name of the view given as a `View` subclass, instance or name."
    if isinstance(view, str):
        return view
    if isinstance(view, View):
        return view.get_name()
    return view.name or view.__name__.lower()


class ViewResult(object):
    """Result of view query; contains rows, offset, total_rows.
    Instances of this class are not supposed to be created by client software.
    """

    def __init__(self, rows, offset, total_rows):
        self.rows = rows
        self.offset = offset
        self.total_rows = total_rows

    def __len__(self):
        return len(self.rows)

    def __getitem__(self, i):
        return self.rows[i]

    def __iter__(self):
        return iter(self.rows)

    @classmethod
    def from_json(cls, data, doc_cls=None):
        "Create from the JSON-like result, the docs as instances of `doc_cls`."
        doc_cls = doc_cls or Document
        rows = []
        for r in data.get("rows", []):
            doc = r.get("doc")
            if doc is not None:
                doc = doc_cls.from_json(doc)
            rows.append(Row(r.get("id"), r.get("rev"), r.get("key"),
                            r.get("value"), doc))
        return cls(rows, data.get("offset"), data.get("total_rows"))

    def json(self):
        "Return data in a JSON-like representation."
        result = dict()
        result["total_rows"] = self.total_rows
        result["offset"] = self.offset
        result["rows"] = []
        for row in self.rows:
            item = {"id": row.id, "key": row.key, "value": row.value}
            if row.doc is not None:
                item["doc"] = row.doc.to_json()
            result["rows"].append(item)
        return result


Row = collections.namedtuple("Row", ["id", "rev", "key", "value", "doc"])

CreationResult = collections.namedtuple("CreationResult", ["ok", "id", "rev"])

ServerVersion = collections.namedtuple("ServerVersion", ["couchdb", "version"])

DatabaseInfo = collections.namedtuple("DatabaseInfo",
                                      ["db_name",
                                       "doc_count",
                                       "doc_del_count",
                                       "update_seq",
                                       "purge_seq",
                                       "compact_running",
                                       "disk_size",
                                       "data_size",
                                       "disk_format_version",
                                       "committed_update_seq"])


def _from_json(cls, data):
    "Create the namedtuple from the JSON-like data; missing items are None."
    return cls(*[data.get(field) for field in cls._fields])


class CouchDocsException(Exception):
    "Base CouchDocs exception."


class InvalidArgumentError(CouchDocsException, ValueError):
    "The document is not in a state allowing the operation."


class RequestFailedError(CouchDocsException):
    "The server responded with a non-success status."

    def __init__(self, reason, status_code, error=None):
        super().__init__(f"{status_code} {reason}")
        self.reason = reason
        self.status_code = status_code
        self.error = error


class NotFoundError(RequestFailedError):
    "No such entity exists."


class ConflictError(RequestFailedError):
    "Wrong or missing '_rev' item in the document to store."


_ERRORS = {404: NotFoundError,
           409: ConflictError}


def classify_error(status_code, body, default_reason=None):
    """Return the exception for the HTTP status code and the response body,
    which is expected to be JSON containing the item `reason`.
    """
    reason = default_reason
    error = None
    try:
        data = json.loads(body)
    except (ValueError, TypeError):
        data = None
    if isinstance(data, dict):
        reason = data.get("reason") or reason
        error = data.get("error")
    cls = _ERRORS.get(status_code, RequestFailedError)
    return cls(reason, status_code, error=error)


def serialize(doc):
    "Convert the document into JSON text."
    return _jsons(doc.to_json())


def deserialize(cls, text):
    "Convert the JSON text into a document of the given class."
    return cls.from_json(json.loads(text))


def _jsons(data, indent=None):
    "Convert data into JSON string."
    return json.dumps(data, ensure_ascii=False, indent=indent)


def _get_parser():
    "Get the parser for the command line tool."
    p = argparse.ArgumentParser(prog="couchdocs", usage="%(prog)s [options]",
                                description="CouchDB document and view"
                                            " command line tool.")
    p.add_argument("--settings", metavar="FILEPATH",
                   help="settings file in JSON format")
    p.add_argument("-S", "--server",
                   help="CouchDB server URL, including port number")
    p.add_argument("-d", "--database", help="database to operate on")
    p.add_argument("-u", "--username", help="CouchDB user account name")
    x01 = p.add_mutually_exclusive_group()
    x01.add_argument("-p", "--password", help="CouchDB user account password")
    x01.add_argument("-q", "--password_question", action="store_true",
                     help="ask for the password by interactive input")
    p.add_argument("--ca_file", metavar="FILEORDIRPATH",
                   help="file or directory containing CAs")
    p.add_argument("-o", "--output", metavar="FILEPATH",
                   help="write output to the given file (JSON format)")
    p.add_argument("--indent", type=int, metavar="INT",
                   help="indentation level for JSON format output file")
    p.add_argument("-y", "--yes", action="store_true",
                   help="do not ask for confirmation (destroy)")
    x02 = p.add_mutually_exclusive_group()
    x02.add_argument("-v", "--verbose", action="store_true",
                     help="print more information, and log requests")
    x02.add_argument("-s", "--silent", action="store_true",
                     help="print no information")

    g0 = p.add_argument_group("server operations")
    g0.add_argument("-V", "--version", action="store_true",
                    help="output CouchDB server version")

    g1 = p.add_argument_group("database operations")
    x11 = g1.add_mutually_exclusive_group()
    x11.add_argument("--create", action="store_true",
                     help="create the database")
    x11.add_argument("--destroy", action="store_true",
                     help="delete the database and all its contents")
    g1.add_argument("--info", action="store_true",
                    help="output information about the database")
    x12 = g1.add_mutually_exclusive_group()
    x12.add_argument("--design", metavar="DDOC",
                     help="output the named design document")
    x12.add_argument("--put_design", nargs=2, metavar=("DDOC", "FILEPATH"),
                     help="create or replace the named design document"
                          " with the views in the JSON file")

    g2 = p.add_argument_group("document operations")
    x2 = g2.add_mutually_exclusive_group()
    x2.add_argument("-G", "--get", metavar="DOCID",
                    help="output the document with the given identifier")
    x2.add_argument("-P", "--put", metavar="FILEPATH",
                    help="create the document, or update it if it has"
                         " a '_rev'; arg is literal doc or filepath")

    g3 = p.add_argument_group("query a design view, returning rows")
    g3.add_argument("--view", metavar="SPEC",
                    help="design view '{design}/{view}' to query")
    g3.add_argument("--include_docs", action="store_true",
                    help="include documents in result")
    return p


def _get_settings(pargs):
    """Get the settings lookup for the command line tool, from the
    defaults, then the settings files, then the environment, and finally
    the command line options.
    """
    settings = DEFAULT_SETTINGS.copy()
    filepaths = DEFAULT_SETTINGS_FILEPATHS[:]
    if pargs.settings:
        filepaths.append(pargs.settings)
    for filepath in filepaths:
        try:
            settings = read_settings(filepath, settings=settings)
        except IOError:
            _verbose(pargs, "Warning: no settings file", filepath)
        except (ValueError, TypeError):
            sys.exit(f"Error: bad settings file {filepath}")
        else:
            _verbose(pargs, "Settings read from file", filepath)
    settings = read_environment(settings)
    for key, value in _option_settings(pargs).items():
        if value:
            settings[key] = value
    if pargs.verbose:
        shown = dict(settings)
        if shown["PASSWORD"] is not None:
            shown["PASSWORD"] = "***"
        print("Settings:", _jsons(shown, indent=2))
    return settings


def _option_settings(pargs):
    "Return the settings given as command line options."
    return {"SERVER": pargs.server,
            "DATABASE": pargs.database,
            "USERNAME": pargs.username,
            "PASSWORD": pargs.password}


DEFAULT_SETTINGS = {"SERVER": "http://localhost:5984",
                    "DATABASE": None,
                    "USERNAME": None,
                    "PASSWORD": None}

DEFAULT_SETTINGS_FILEPATHS = ["~/.couchdocs", "settings.json"]

SETTINGS_PREFIXES = ["", "COUCHDB_", "COUCHDOCS_"]


def read_settings(filepath, settings=None):
    """Read the settings lookup from a JSON format file.
    If `settings` is given, then return an updated copy of it,
    else copy the default settings, update, and return.
    """
    if settings:
        result = settings.copy()
    else:
        result = DEFAULT_SETTINGS.copy()
    with open(os.path.expanduser(filepath), "rb") as infile:
        data = json.load(infile)
        for key in DEFAULT_SETTINGS:
            for prefix in SETTINGS_PREFIXES:
                try:
                    result[key] = data[prefix + key]
                except KeyError:
                    pass
    return result


def read_environment(settings=None, environ=None):
    """Update the settings lookup from environment variables named by
    the settings keys having the prefix 'COUCHDB_' or 'COUCHDOCS_'.
    Returns an updated copy.
    """
    result = (settings or DEFAULT_SETTINGS).copy()
    if environ is None:
        environ = os.environ
    for key in DEFAULT_SETTINGS:
        for prefix in SETTINGS_PREFIXES[1:]:
            try:
                result[key] = environ[prefix + key]
            except KeyError:
                pass
    return result


def _get_server(pargs, settings):
    "Connect to the server defined in the settings."
    return Server(href=settings["SERVER"],
                  username=settings["USERNAME"],
                  password=settings["PASSWORD"],
                  ca_file=pargs.ca_file)

def _get_database_name(settings):
    "Get the name of the database defined in the settings."
    if not settings["DATABASE"]:
        sys.exit("Error: no database defined")
    return settings["DATABASE"]

def _get_database(server, settings):
    "Open the database defined in the settings."
    return server[_get_database_name(settings)]

def _message(pargs, *args):
    "Unless flag '--silent' was used, print the arguments."
    if not pargs.silent:
        print(*args)

def _verbose(pargs, *args):
    "If flag '--verbose' was used, then print the arguments."
    if pargs.verbose:
        print(*args)

def _json_output(pargs, data, else_print=False):
    """If `--output` was used, write the data in JSON format to the file.
    The indentation level is set by `--indent`.

    If `--output` was not used and `else_print` is True,
    then use `print()` for indented JSON output.

    Return True if `--output` was used, else False.
    """
    if pargs.output:
        with io.open(pargs.output, "w", encoding="utf-8") as outfile:
            outfile.write(_jsons(data, indent=pargs.indent))
        _verbose(pargs, "Wrote JSON to file", pargs.output)
    elif else_print:
        print(_jsons(data, indent=2))
    return bool(pargs.output)

def json_input(filepath):
    "Read the JSON document file."
    try:
        with open(filepath, "r") as infile:
            return json.load(infile)
    except (IOError, ValueError, TypeError) as error:
        sys.exit(f"Error: {error}")

def design_input(designname, data):
    """Create a design document from the JSON-like data, which is either
    a lookup of view name to view, or a design document having the
    item `views`.
    """
    views = data.get("views", data)
    return DesignDocument(name=designname,
                          views=[View(name=name,
                                      map=view.get("map"),
                                      reduce=view.get("reduce"))
                                 for name, view in views.items()])

def _execute(pargs, settings):
    "Execution of the CouchDocs command line tool."
    server = _get_server(pargs, settings)
    if pargs.version:
        if not _json_output(pargs, server.version):
            print(server.version)

    if pargs.create:
        db = server.create_database(_get_database_name(settings))
        _message(pargs, "Created database", db)
    elif pargs.destroy:
        db = _get_database(server, settings)
        if not pargs.yes:
            answer = input(f"Really destroy database '{db}' [n] ? ")
            if answer and answer.lower()[0] in ("y", "t"):
                pargs.yes = True
        if pargs.yes:
            db.destroy()
            _message(pargs, f"Destroyed database '{db}'.")

    if pargs.info:
        db = _get_database(server, settings)
        _json_output(pargs, db.get_info()._asdict(), else_print=True)

    if pargs.design:
        db = _get_database(server, settings)
        _json_output(pargs, db.get_design(pargs.design).to_json(),
                     else_print=True)
    elif pargs.put_design:
        ddoc = design_input(pargs.put_design[0],
                            json_input(pargs.put_design[1]))
        _get_database(server, settings).upsert_design_document(ddoc)
        _message(pargs, "Stored design", ddoc.id, ddoc.rev)

    if pargs.get:
        doc = _get_database(server, settings)[pargs.get]
        _json_output(pargs, doc.to_json(), else_print=True)
    elif pargs.put:
        try:  # Attempt to interpret arg as explicit doc
            data = json.loads(pargs.put)
        except (ValueError, TypeError):  # Arg is filepath to doc
            data = json_input(pargs.put)
        db = _get_database(server, settings)
        doc = Document.from_json(data)
        if doc.rev:
            db.update(doc)
        else:
            db.create(doc)
        _message(pargs, "Stored doc", doc.id, doc.rev)

    if pargs.view:
        try:
            design, view = pargs.view.split("/")
        except ValueError:
            sys.exit("Error: invalid view specification")
        result = _get_database(server, settings).view(
            design, view, include_docs=pargs.include_docs)
        _json_output(pargs, result.json(), else_print=True)


def main():
    "Entry point for the CouchDocs command line tool."
    try:
        parser = _get_parser()
        pargs = parser.parse_args()
        if len(sys.argv) == 1:
            parser.print_usage()
        if pargs.verbose:
            logging.basicConfig(level=logging.DEBUG)
        settings = _get_settings(pargs)
        if pargs.password_question:
            settings["PASSWORD"] = getpass.getpass("password > ")
        _execute(pargs, settings)
    except (CouchDocsException, requests.RequestException) as error:
        sys.exit(f"Error: {error}")


if __name__ == "__main__":
    main()
