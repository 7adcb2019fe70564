"""Rust programs used across the test suite."""

SP1_GUEST = """\
#![no_main]
sp1_zkvm::entrypoint!(main);

pub fn main() {
    let n = sp1_zkvm::io::read::<u32>();
    let result = fib(n);
    sp1_zkvm::io::commit(&result);
}

fn fib(n: u32) -> u32 {
    let (mut a, mut b) = (0u32, 1u32);
    for _ in 0..n {
        let c = a.wrapping_add(b);
        a = b;
        b = c;
    }
    a
}
"""

SP1_HOST = """\
fn main() {
    let client = sp1_sdk::ProverClient::from_env();
    let mut stdin = sp1_sdk::SP1Stdin::new();
    stdin.write(&20u32);
    let (pk, vk) = client.setup(ELF);
    let proof = client.prove(&pk, &stdin).run().unwrap();
}
"""

RISC0_CHUNK_GUEST = """\
use risc0_zkvm::guest::env;

risc0_zkvm::guest::entry!(main);

fn main() {
    let mut c0 = [0u32; 8];
    env::read_slice(&mut c0);
    let mut c1 = [0u32; 8];
    env::read_slice(&mut c1);
    let mut c2 = [0u32; 8];
    env::read_slice(&mut c2);
    let mut c3 = [0u32; 8];
    env::read_slice(&mut c3);
    let mut c4 = [0u32; 8];
    env::read_slice(&mut c4);
}
"""

RISC0_CYCLE_GUEST = """\
risc0_zkvm::guest::entry!(main);

fn main() {
    let start = risc0_zkvm::guest::env::cycle_count();
    let x: u64 = risc0_zkvm::guest::env::read();
    risc0_zkvm::guest::env::commit(&x);
}
"""

RISC0_RAW_GUEST = """\
risc0_zkvm::guest::entry!(main);

fn main() {
    let mut flag = [0u8; 1];
    risc0_zkvm::guest::env::read_slice(&mut flag);
    let mut word = [0u8; 4];
    risc0_zkvm::guest::env::read_slice(&mut word);
}
"""

SPLIT_GUEST = """\
sp1_zkvm::entrypoint!(main);

pub fn main() {
    let public = sp1_zkvm::io::read::<u64>();
    let secret = sp1_zkvm::io::read::<u64>();
    assert_ne!(secret, 0);
    sp1_zkvm::io::commit(&public);
}
"""

SPLIT_HOST = """\
fn main() {
    let mut stdin = sp1_sdk::SP1Stdin::new();
    stdin.write(&42u64);
    stdin.write(&7u64);
}
"""

JOLT_GUEST = """\
#[jolt::provable]
fn fib(n: u32) -> u128 {
    let mut a: u128 = 0;
    let mut b: u128 = 1;
    for _ in 1..n {
        let sum = a + b;
        a = b;
        b = sum;
    }
    b
}
"""

JOLT_HOST = """\
pub fn main() {
    let target_dir = "/tmp/jolt-guest-targets";
    let (output, proof) = guest::prove_fib(50);
    println!("output: {}", output);
}
"""

LOOP_GUEST = """\
risc0_zkvm::guest::entry!(main);

fn main() {
    let n: u32 = risc0_zkvm::guest::env::read();
    for _ in 0..n {
        let x: u32 = risc0_zkvm::guest::env::read();
    }
}
"""

FLAT_HOST = """\
fn main() {
    let mut env = risc0_zkvm::ExecutorEnv::builder();
    env.write(&3u32).unwrap();
    env.write(&7u32).unwrap();
}
"""

LOOP_HOST = """\
fn main() {
    let mut env = risc0_zkvm::ExecutorEnv::builder();
    env.write(&3u32).unwrap();
    for v in values.iter() {
        env.write(v).unwrap();
    }
}
"""
