"""Mocked operator login and target intake for CodeSentinel.

Neither flow touches a real identity provider or a real repository: an
e-mail address becomes an operator profile, and a repository URL or archive
filename becomes a target descriptor.
"""

from __future__ import annotations

from codesentinel.review.models import Operator, TargetDescriptor, TargetKind

DEFAULT_ROLE = "Lead Architect"
ARCHIVE_FILE_COUNT = 45

DEMO_CODE = """
import express from 'express';
import { query } from './db';
import jwt from 'jsonwebtoken';

const app = express();
app.use(express.json());

const SECRET = "temp_secret_key_123"; // TODO: Move to env var

// User Login
app.post('/login', async (req, res) => {
  const { username, password } = req.body;
  // VULNERABILITY: SQL Injection
  const user = await query(`SELECT * FROM users WHERE username = '${username}' AND password = '${password}'`);

  if (user) {
    const token = jwt.sign({ id: user.id, role: user.role }, SECRET);
    res.json({ token });
  } else {
    res.status(401).send('Invalid credentials');
  }
});

// Get User Profile
app.get('/profile', async (req, res) => {
  const token = req.headers.authorization;
  try {
    const decoded = jwt.verify(token, SECRET);
    // PERFORMANCE: N+1 Query potential if called in list
    const userData = await query(`SELECT * FROM users WHERE id = ${decoded.id}`);
    const posts = await query(`SELECT * FROM posts WHERE user_id = ${decoded.id}`);

    // Simulating heavy computation
    let hugeArray = [];
    for(let i=0; i<1000000; i++) { hugeArray.push(i); }

    res.json({ user: userData, posts });
  } catch (e) {
    res.status(403).send('Invalid token');
  }
});

app.listen(3000, () => console.log('Server running on 3000'));
"""


def operator_from_email(email: str, role: str = DEFAULT_ROLE) -> Operator:
    """Build an authenticated operator from an e-mail address.

    The display name is the local part of the address.

    Raises:
        ValueError: If ``email`` is blank or has an empty local part.
    """
    email = email.strip()
    name = email.split("@", 1)[0].strip()
    if not name:
        raise ValueError("An e-mail address is required to log in")
    return Operator(name=name, role=role, is_authenticated=True)


def target_from_repository_url(url: str, content: str | None = None) -> TargetDescriptor:
    """Build a GITHUB target named after the last segment of ``url``.

    Trailing slashes and a ``.git`` suffix are ignored when naming.

    Raises:
        ValueError: If no name can be derived from the URL.
    """
    url = url.strip()
    name = url.rstrip("/").split("/")[-1]
    if name.endswith(".git"):
        name = name[: -len(".git")]
    if not name:
        raise ValueError(f"Cannot derive a repository name from {url!r}")
    return TargetDescriptor(type=TargetKind.GITHUB, name=name, url=url, content=content)


def target_from_archive(filename: str, content: str | None = None) -> TargetDescriptor:
    """Build a ZIP target named after ``filename`` without its extension."""
    filename = filename.strip()
    name = filename[: -len(".zip")] if filename.lower().endswith(".zip") else filename
    if not name:
        raise ValueError("An archive filename is required")
    return TargetDescriptor(
        type=TargetKind.ZIP,
        name=name,
        files=ARCHIVE_FILE_COUNT,
        content=content,
    )


def analyzable_content(target: TargetDescriptor | None) -> str:
    """Source text sent to the analyzer for ``target``; the demo snippet when it has none."""
    if target is not None and target.content:
        return target.content
    return DEMO_CODE
