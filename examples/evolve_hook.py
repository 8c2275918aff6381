"""
examples/evolve_hook.py — Simulated editor hook

1. Creates agents for a project from a hand-written codebase analysis
2. Reports a few file changes, as an editor save hook would
3. Prints what each agent said and the combined suggestions
4. Shows the learned pattern memory of the first agent

Usage:
    python -m examples.evolve_hook --app demo-app

Run this AFTER starting the server:
    python -m mech_evolve.main
"""
import asyncio
import argparse
import json

import httpx

BASE_URL = "http://127.0.0.1:3011"

ANALYSIS = {
    "projectType": "react-app",
    "languages": ["typescript"],
    "frameworks": ["react", "express"],
    "complexity": "moderate",
    "suggestedAgents": [
        {"name": "CodeQualityGuardian", "role": "Code Quality", "purpose": "Maintain code standards",
         "triggers": [".ts", "refactor"], "capabilities": ["linting", "formatting", "complexity-reduction"],
         "priority": "critical", "tier": 1},
        {"name": "SecuritySentinel", "role": "Security", "purpose": "Catch auth and validation issues",
         "triggers": ["auth", "validation"], "capabilities": ["vulnerability-scanning"],
         "priority": "critical", "tier": 1},
        {"name": "PerformanceWatchdog", "role": "Performance", "purpose": "Watch bundle size",
         "triggers": ["component", ".tsx"], "capabilities": ["bundle-optimization", "memoization"],
         "priority": "important", "tier": 2},
    ],
}

CHANGES = [
    ("/src/api/login.ts", "auth-change"),
    ("/src/utils/format.ts", "refactor"),
    ("/src/utils/format.ts", "refactor"),
    ("/src/components/Header.tsx", "function-add"),
]


async def main(app_id: str):
    async with httpx.AsyncClient(base_url=BASE_URL, timeout=30) as client:

        # 1. Create agents
        r = await client.post("/api/agents/create", json={"applicationId": app_id, **ANALYSIS})
        if r.status_code != 200:
            print(f"[hook] Agent creation failed: {r.status_code} {r.text}"); return
        print(f"[hook] {r.json()['message']}")

        # 2. Report changes
        for path, change_type in CHANGES:
            r = await client.post("/api/evolution/track", json={
                "applicationId": app_id, "filePath": path, "changeType": change_type,
            })
            body = r.json()
            print(f"\n[hook] {change_type} {path}: {body['message']}")
            for resp in body["responses"]:
                related = resp.get("coordination", {}).get("relatedAgents", [])
                print(f"  - {resp['agentName']} (confidence {resp['confidence']:.1f}): {resp['analysis']}")
                if related:
                    print(f"    coordinated with: {', '.join(related)}")
            for s in body["suggestions"]:
                print(f"    * [{s['priority']}] {s['description']}")

        # 3. Inspect memory
        r = await client.get(f"/api/agents/{app_id}")
        agents = r.json()["agents"]
        if agents:
            first = agents[0]
            r = await client.get(f"/api/agents/{app_id}/{first['id']}/memory")
            print(f"\n[hook] Memory of {first['name']}:")
            print(json.dumps(r.json()["agent"]["memory"], indent=2))


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Simulated editor hook for mech-evolve")
    parser.add_argument("--app", default="demo-app", help="Application id")
    args = parser.parse_args()
    asyncio.run(main(args.app))
