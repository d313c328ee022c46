"""
Solar CRM - Fixtures de test

FakeDB: sous-ensemble en mémoire de l'API motor utilisé par le backend
(find().to_list, find_one, insert_one, update_one upsert, create_index).
"""

import copy
import pytest


def _matches(doc: dict, query: dict) -> bool:
    for key, cond in query.items():
        value = doc.get(key)
        if isinstance(cond, dict):
            for op, arg in cond.items():
                if op == "$gt" and not (value is not None and value > arg):
                    return False
                if op == "$gte" and not (value is not None and value >= arg):
                    return False
        elif value != cond:
            return False
    return True


def _project(doc: dict, projection: dict = None) -> dict:
    doc = copy.deepcopy(doc)
    if not projection:
        return doc
    included = [k for k, v in projection.items() if v and k != "_id"]
    if included:
        doc = {k: doc[k] for k in included if k in doc}
    for k, v in projection.items():
        if not v:
            doc.pop(k, None)
    return doc


class FakeCursor:
    def __init__(self, docs):
        self.docs = docs

    async def to_list(self, length=None):
        return self.docs if length is None else self.docs[:length]


class FakeCollection:
    def __init__(self, name, database):
        self.name = name
        self.database = database
        self.docs = []

    def _check(self):
        if self.name in self.database.failing:
            raise RuntimeError(f"collection {self.name} indisponible")

    def find(self, query=None, projection=None):
        self._check()
        return FakeCursor([_project(d, projection) for d in self.docs if _matches(d, query or {})])

    async def find_one(self, query=None, projection=None):
        self._check()
        for d in self.docs:
            if _matches(d, query or {}):
                return _project(d, projection)
        return None

    async def insert_one(self, doc):
        self._check()
        doc["_id"] = f"oid_{len(self.docs)}"
        self.docs.append(copy.deepcopy(doc))

    async def insert_many(self, docs):
        for doc in docs:
            await self.insert_one(doc)

    async def update_one(self, query, update, upsert=False):
        self._check()
        for d in self.docs:
            if _matches(d, query):
                d.update(copy.deepcopy(update.get("$set", {})))
                return
        if upsert:
            await self.insert_one({**query, **update.get("$set", {})})

    async def create_index(self, *args, **kwargs):
        return None


class FakeDB:
    def __init__(self):
        self.collections = {}
        self.failing = set()

    def __getitem__(self, name):
        if name not in self.collections:
            self.collections[name] = FakeCollection(name, self)
        return self.collections[name]

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        return self[name]

    def fail(self, name):
        self.failing.add(name)


@pytest.fixture
def fake_db(monkeypatch):
    """Remplace la connexion motor dans tous les modules qui l'importent"""
    import config
    import routes.auth
    import services.alert_store
    import services.event_logger
    import services.settings

    database = FakeDB()
    for module in (config, routes.auth, services.alert_store, services.event_logger, services.settings):
        monkeypatch.setattr(module, "db", database)
    return database
